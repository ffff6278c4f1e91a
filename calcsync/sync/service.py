"""Request-level entry points of the sync engine.

``SyncService`` bundles the orchestrator, batch coordinator and conflict
resolver around one pair of stores, and adds the read-only queries
(incremental pull, sync logs, sync status).
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable

from .entities import (
    BatchSyncResult,
    Entity,
    ResolutionResult,
    SyncLogPage,
    SyncLogQuery,
    SyncResult,
)
from .exceptions import InvalidArgument
from .kinds import RecordKind
from .orchestrator import BatchCoordinator, SyncOrchestrator
from .resolver import ConflictResolver
from .stores import EntityStore, SyncLogStore
from .timeutil import from_millis, utcnow

RECENT_SYNC_COUNT = 5


def parse_millis(millis: int | None) -> datetime | None:
    if millis is None:
        return None
    if millis < 0:
        raise InvalidArgument(f"Timestamp must not be negative: {millis}")
    return from_millis(millis)


class SyncService:
    def __init__(
        self,
        entity_store: EntityStore,
        log_store: SyncLogStore,
        clock: Callable[[], datetime] = utcnow,
        max_page_size: int = 100,
    ):
        self.entity_store = entity_store
        self.log_store = log_store
        self.clock = clock
        self.max_page_size = max_page_size
        self.orchestrator = SyncOrchestrator(entity_store, log_store, clock)
        self.coordinator = BatchCoordinator(self.orchestrator)
        self.resolver = ConflictResolver(entity_store, log_store, clock)

    def sync_entities(
        self,
        owner_id: str,
        device_id: str,
        kind: RecordKind | str,
        entities: Iterable[Entity],
        last_sync_time: int | None = None,
    ) -> SyncResult:
        """Sync one entity kind; ``last_sync_time`` is epoch millis."""
        return self.orchestrator.sync(
            owner_id,
            device_id,
            kind,
            entities,
            last_sync_time=parse_millis(last_sync_time),
        )

    def batch_sync(
        self,
        owner_id: str,
        device_id: str,
        calculation_records: Iterable[Entity] = (),
        parameter_sets: Iterable[Entity] = (),
        last_sync_time: int | None = None,
    ) -> BatchSyncResult:
        return self.coordinator.batch_sync(
            owner_id,
            device_id,
            calculation_records,
            parameter_sets,
            last_sync_time=parse_millis(last_sync_time),
        )

    def resolve_conflict(
        self,
        owner_id: str,
        record_id: str,
        record_type: str,
        resolution: str,
        client_data,
        device_id: str,
    ) -> ResolutionResult:
        return self.resolver.resolve(
            owner_id, record_id, record_type, resolution, client_data, device_id
        )

    def get_entities_since(
        self, owner_id: str, kind: RecordKind | str, since_millis: int | None = None
    ) -> list[Entity]:
        """Read-only incremental pull used for fresh-device bootstrap."""
        return self.entity_store.list_since(
            owner_id, RecordKind.parse(kind), parse_millis(since_millis)
        )

    def get_sync_logs(self, owner_id: str, query: SyncLogQuery) -> SyncLogPage:
        if query.page < 1:
            raise InvalidArgument(f"Page must be at least 1, got {query.page}")
        if query.page_size < 1:
            raise InvalidArgument(f"Page size must be at least 1, got {query.page_size}")
        if query.page_size > self.max_page_size:
            query = replace(query, page_size=self.max_page_size)
        if query.start_time and query.end_time and query.start_time > query.end_time:
            raise InvalidArgument("startTime is after endTime")
        return self.log_store.query(owner_id, query)

    def get_sync_status(self, owner_id: str) -> SyncLogPage:
        """The owner's most recent sync operations across all devices."""
        return self.log_store.query(
            owner_id, SyncLogQuery(page=1, page_size=RECENT_SYNC_COUNT)
        )
