"""Database models for calcsync."""

from .base import Base, SessionLocal, engine, get_db, init_database
from .records import CalculationRecordRow, ParameterSetRow, SyncLogRow

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_database",
    "CalculationRecordRow",
    "ParameterSetRow",
    "SyncLogRow",
]
