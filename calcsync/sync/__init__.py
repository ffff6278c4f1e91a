"""Synchronization and conflict-resolution engine.

This package provides:
- RecordKind: The entity collections that take part in sync
- classify: Conflict detection for a single uploaded entity
- SyncOrchestrator / BatchCoordinator: Sync exchanges per kind and per request
- ConflictResolver: Client-wins / server-wins resolution
- EntityStore / SyncLogStore: Storage interfaces, with SQLAlchemy versions
- SyncService: Request-level entry points used by the HTTP layer
"""

from calcsync.sync.detector import Verdict, classify
from calcsync.sync.entities import (
    BatchSyncResult,
    Conflict,
    Entity,
    EntityFailure,
    ResolutionResult,
    SyncLogEntry,
    SyncLogPage,
    SyncLogQuery,
    SyncResult,
    SyncStatistics,
    SyncStatus,
    SyncType,
)
from calcsync.sync.exceptions import (
    InvalidArgument,
    NotFound,
    PartialFailure,
    StoreError,
    StoreUnavailable,
    SyncError,
)
from calcsync.sync.kinds import RecordKind
from calcsync.sync.orchestrator import BatchCoordinator, SyncOrchestrator
from calcsync.sync.resolver import ConflictResolver, Resolution
from calcsync.sync.service import SyncService
from calcsync.sync.stores import (
    EntityStore,
    SqlEntityStore,
    SqlSyncLogStore,
    SyncLogStore,
)

__all__ = [
    # Domain
    "RecordKind",
    "Entity",
    "SyncLogEntry",
    "SyncLogQuery",
    "SyncLogPage",
    "SyncStatistics",
    "SyncStatus",
    "SyncType",
    "Conflict",
    "EntityFailure",
    "SyncResult",
    "BatchSyncResult",
    "ResolutionResult",
    # Engine
    "Verdict",
    "classify",
    "SyncOrchestrator",
    "BatchCoordinator",
    "ConflictResolver",
    "Resolution",
    "SyncService",
    # Stores
    "EntityStore",
    "SyncLogStore",
    "SqlEntityStore",
    "SqlSyncLogStore",
    # Exceptions
    "SyncError",
    "InvalidArgument",
    "NotFound",
    "StoreError",
    "StoreUnavailable",
    "PartialFailure",
]
