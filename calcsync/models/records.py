"""Tables for synced entities and the sync audit log.

Timestamps are stored as naive UTC; conversion to aware datetimes
happens in the store layer.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)

from .base import Base


class CalculationRecordRow(Base):
    """A calculation record owned by one user."""

    __tablename__ = "calculation_records"

    owner_id = Column(String(64), primary_key=True)
    id = Column(String(64), primary_key=True)
    calculation_type = Column(String(50), nullable=False, default="")
    parameters = Column(JSON, nullable=False, default=dict)
    results = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    device_id = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_calculation_records_owner_updated", "owner_id", "updated_at"),
    )


class ParameterSetRow(Base):
    """A named parameter set owned by one user."""

    __tablename__ = "parameter_sets"

    owner_id = Column(String(64), primary_key=True)
    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False, default="")
    calculation_type = Column(String(50), nullable=False, default="")
    parameters = Column(JSON, nullable=False, default=dict)
    is_preset = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    device_id = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_parameter_sets_owner_updated", "owner_id", "updated_at"),
    )


class SyncLogRow(Base):
    """One audited sync operation. Rows are never updated or deleted."""

    __tablename__ = "sync_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(64), nullable=False)
    device_id = Column(String(100), nullable=False)
    sync_type = Column(String(20), nullable=False)
    record_count = Column(Integer, nullable=False, default=0)
    sync_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sync_logs_owner_device_time", "owner_id", "device_id", "sync_time"),
    )
