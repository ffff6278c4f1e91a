"""Entity and sync log stores.

The engine only talks to the abstract ``EntityStore`` and ``SyncLogStore``
interfaces. The SQLAlchemy implementations below commit every write on
its own, so an interrupted batch leaves a prefix of whole rows applied
and never a half-written entity.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from calcsync.models import CalculationRecordRow, ParameterSetRow, SyncLogRow

from .entities import (
    Entity,
    SyncLogEntry,
    SyncLogPage,
    SyncLogQuery,
    SyncStatus,
    SyncType,
)
from .exceptions import StoreError, StoreUnavailable
from .kinds import PAYLOAD_FIELDS, RecordKind, normalize_payload
from .timeutil import as_utc, to_db

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """Durable storage for synced entities, keyed by (owner_id, id)."""

    @abstractmethod
    def get(self, owner_id: str, kind: RecordKind, entity_id: str) -> Entity | None:
        """Return the stored entity or None if the owner has no such id."""

    @abstractmethod
    def upsert(self, owner_id: str, entity: Entity) -> Entity:
        """Insert or replace an entity atomically and return the stored copy.

        Raises:
            StoreError: If the write would move ``updated_at`` backwards
                or the write fails
            StoreUnavailable: If the store cannot be reached
        """

    @abstractmethod
    def list_since(
        self, owner_id: str, kind: RecordKind, since: datetime | None = None
    ) -> list[Entity]:
        """Entities with ``updated_at > since`` (all when since is None),
        newest first."""

    @abstractmethod
    def ping(self) -> bool:
        """Check that the store is reachable."""


class SyncLogStore(ABC):
    """Append-only storage for sync log entries."""

    @abstractmethod
    def append(self, entry: SyncLogEntry) -> SyncLogEntry:
        """Persist a new entry."""

    @abstractmethod
    def query(self, owner_id: str, query: SyncLogQuery) -> SyncLogPage:
        """Return one page of the owner's entries, newest first."""


@contextmanager
def translate_errors(session: Session, action: str):
    """Roll back and re-raise database errors as store errors."""
    try:
        yield
    except OperationalError as e:
        session.rollback()
        raise StoreUnavailable(f"Failed to {action}: {e.orig or e}") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError(f"Failed to {action}: {e}") from e


ROW_TYPES = {
    RecordKind.CALCULATION_RECORD: CalculationRecordRow,
    RecordKind.PARAMETER_SET: ParameterSetRow,
}


class SqlEntityStore(EntityStore):
    """Entity store backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def _to_entity(self, kind: RecordKind, row) -> Entity:
        return Entity(
            id=row.id,
            kind=kind,
            payload={name: getattr(row, name) for name in PAYLOAD_FIELDS[kind]},
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            owner_id=row.owner_id,
            origin_device_id=row.device_id,
        )

    def get(self, owner_id: str, kind: RecordKind, entity_id: str) -> Entity | None:
        with translate_errors(self.session, f"read {kind.label} {entity_id}"):
            row = self.session.get(
                ROW_TYPES[kind], {"owner_id": owner_id, "id": entity_id}
            )
            return self._to_entity(kind, row) if row is not None else None

    def upsert(self, owner_id: str, entity: Entity) -> Entity:
        kind = RecordKind.parse(entity.kind)
        row_type = ROW_TYPES[kind]
        payload = normalize_payload(kind, entity.payload)

        with translate_errors(self.session, f"write {kind.label} {entity.id}"):
            row = self.session.get(row_type, {"owner_id": owner_id, "id": entity.id})
            if row is None:
                row = row_type(
                    owner_id=owner_id,
                    id=entity.id,
                    created_at=to_db(entity.created_at),
                )
                self.session.add(row)
            elif as_utc(row.updated_at) > as_utc(entity.updated_at):
                self.session.rollback()
                raise StoreError(
                    f"Refusing to move {kind.label} {entity.id} back to "
                    f"{entity.updated_at.isoformat()}"
                )

            for name, value in payload.items():
                setattr(row, name, value)
            row.updated_at = to_db(entity.updated_at)
            row.device_id = entity.origin_device_id

            self.session.commit()
            self.session.refresh(row)
            return self._to_entity(kind, row)

    def list_since(
        self, owner_id: str, kind: RecordKind, since: datetime | None = None
    ) -> list[Entity]:
        row_type = ROW_TYPES[kind]
        with translate_errors(self.session, f"list {kind.label}s"):
            query = self.session.query(row_type).filter(row_type.owner_id == owner_id)
            if since is not None:
                query = query.filter(row_type.updated_at > to_db(since))
            rows = query.order_by(row_type.updated_at.desc(), row_type.id).all()
            return [self._to_entity(kind, row) for row in rows]

    def ping(self) -> bool:
        try:
            self.session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Entity store health check failed: {e}")
            self.session.rollback()
            return False


class SqlSyncLogStore(SyncLogStore):
    """Sync log store backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_entry(row: SyncLogRow) -> SyncLogEntry:
        return SyncLogEntry(
            id=row.id,
            owner_id=row.owner_id,
            device_id=row.device_id,
            sync_type=SyncType(row.sync_type),
            record_count=row.record_count,
            sync_time=as_utc(row.sync_time),
            status=SyncStatus(row.status),
            error_message=row.error_message,
        )

    def append(self, entry: SyncLogEntry) -> SyncLogEntry:
        with translate_errors(self.session, "append sync log"):
            row = SyncLogRow(
                id=entry.id,
                owner_id=entry.owner_id,
                device_id=entry.device_id,
                sync_type=entry.sync_type.value,
                record_count=entry.record_count,
                sync_time=to_db(entry.sync_time),
                status=entry.status.value,
                error_message=entry.error_message,
            )
            self.session.add(row)
            self.session.commit()
            return entry

    def query(self, owner_id: str, query: SyncLogQuery) -> SyncLogPage:
        with translate_errors(self.session, "query sync logs"):
            rows = self.session.query(SyncLogRow).filter(
                SyncLogRow.owner_id == owner_id
            )

            if query.device_id:
                rows = rows.filter(SyncLogRow.device_id == query.device_id)
            if query.start_time is not None:
                rows = rows.filter(SyncLogRow.sync_time >= to_db(query.start_time))
            if query.end_time is not None:
                rows = rows.filter(SyncLogRow.sync_time <= to_db(query.end_time))
            if query.sync_type is not None:
                rows = rows.filter(SyncLogRow.sync_type == query.sync_type.value)
            if query.status is not None:
                rows = rows.filter(SyncLogRow.status == query.status.value)

            total_count = rows.with_entities(func.count(SyncLogRow.id)).scalar() or 0

            page_rows = (
                rows.order_by(SyncLogRow.sync_time.desc(), SyncLogRow.id)
                .offset((query.page - 1) * query.page_size)
                .limit(query.page_size)
                .all()
            )

            return SyncLogPage(
                logs=[self._to_entry(row) for row in page_rows],
                total_count=total_count,
                page=query.page,
                page_size=query.page_size,
            )
