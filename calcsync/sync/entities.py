"""Domain objects exchanged between the sync engine and its callers."""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .kinds import RecordKind


class SyncType(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    BATCH = "batch"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class Entity:
    """A calculation record or parameter set as seen by the engine.

    ``id`` is generated by the client and is the idempotency key across
    devices. ``payload`` holds the kind-specific fields (see
    ``PAYLOAD_FIELDS``).
    """

    id: str
    kind: RecordKind
    payload: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    owner_id: str | None = None
    origin_device_id: str | None = None


@dataclass(frozen=True)
class SyncLogEntry:
    """Audit record written once per sync or resolution call."""

    id: str
    owner_id: str
    device_id: str
    sync_type: SyncType
    record_count: int
    sync_time: datetime
    status: SyncStatus
    error_message: str | None = None

    @classmethod
    def create(cls, **fields) -> "SyncLogEntry":
        return cls(id=str(uuid.uuid4()), **fields)


@dataclass
class SyncStatistics:
    uploaded_count: int = 0
    downloaded_count: int = 0
    conflict_count: int = 0
    failed_count: int = 0
    duration_ms: int = 0

    @classmethod
    def combined(cls, *parts: "SyncStatistics") -> "SyncStatistics":
        """Sum counts across entity kinds."""
        return cls(
            uploaded_count=sum(p.uploaded_count for p in parts),
            downloaded_count=sum(p.downloaded_count for p in parts),
            conflict_count=sum(p.conflict_count for p in parts),
            failed_count=sum(p.failed_count for p in parts),
            duration_ms=sum(p.duration_ms for p in parts),
        )


@dataclass
class Conflict:
    """A submitted entity whose base is older than the stored copy."""

    entity_id: str
    client_updated_at: datetime
    server_updated_at: datetime
    server_entity: Entity


@dataclass
class EntityFailure:
    entity_id: str
    error: str


@dataclass
class SyncResult:
    """Outcome of one sync exchange for one entity kind."""

    kind: RecordKind
    server_timestamp: datetime
    success: bool = True
    message: str = ""
    error_code: str | None = None
    accepted: list[Entity] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    failed: list[EntityFailure] = field(default_factory=list)
    download: list[Entity] = field(default_factory=list)
    statistics: SyncStatistics = field(default_factory=SyncStatistics)
    log_entry: SyncLogEntry | None = None


@dataclass
class BatchSyncResult:
    server_timestamp: datetime
    calculation_result: SyncResult
    parameter_result: SyncResult
    overall_statistics: SyncStatistics
    success: bool = True
    message: str = ""


@dataclass
class ResolutionResult:
    success: bool
    message: str
    entity: Entity
    server_timestamp: datetime
    log_entry: SyncLogEntry | None = None


@dataclass
class SyncLogQuery:
    """Filters for sync log lookups. Time bounds are inclusive."""

    device_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    sync_type: SyncType | None = None
    status: SyncStatus | None = None
    page: int = 1
    page_size: int = 20


@dataclass
class SyncLogPage:
    logs: list[SyncLogEntry]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)
