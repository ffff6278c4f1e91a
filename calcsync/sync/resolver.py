"""Explicit resolution of conflicts reported by a sync.

Resolution is whole-record: either the client's copy replaces the stored
payload or the stored copy is kept. Every call is audited, including
server-wins calls that leave the store untouched.
"""

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from .entities import ResolutionResult, SyncLogEntry, SyncStatus, SyncType
from .exceptions import InvalidArgument, NotFound, SyncError
from .kinds import RecordKind, has_payload_fields, normalize_payload, parse_document
from .stores import EntityStore, SyncLogStore
from .timeutil import utcnow

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    CLIENT_WINS = "client_wins"
    SERVER_WINS = "server_wins"

    @classmethod
    def parse(cls, value: "str | Resolution") -> "Resolution":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgument(f"Unsupported resolution: {value}") from None


class ConflictResolver:
    """Apply a caller-selected policy to a previously reported conflict."""

    def __init__(
        self,
        entity_store: EntityStore,
        log_store: SyncLogStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.entity_store = entity_store
        self.log_store = log_store
        self.clock = clock

    def resolve(
        self,
        owner_id: str,
        record_id: str,
        record_type: RecordKind | str,
        resolution: Resolution | str,
        client_data: Any,
        device_id: str,
    ) -> ResolutionResult:
        """Resolve the conflict on ``record_id``.

        Args:
            owner_id: Owner of the record
            record_id: Id of the conflicting entity
            record_type: Which collection the id belongs to
            resolution: ``client_wins`` or ``server_wins``
            client_data: The client's payload (object or JSON string);
                required for ``client_wins``, ignored otherwise
            device_id: Device making the decision

        Returns:
            ResolutionResult holding the entity as stored afterwards

        Raises:
            InvalidArgument: Unknown record type or resolution, or missing
                or malformed client data
            NotFound: The owner has no such record
            StoreError: The store failed
        """
        server_timestamp = self.clock()

        try:
            kind = RecordKind.parse(record_type)
            policy = Resolution.parse(resolution)

            current = self.entity_store.get(owner_id, kind, record_id)
            if current is None:
                raise NotFound(f"{kind.label.capitalize()} not found: {record_id}", record_id)

            if policy is Resolution.CLIENT_WINS:
                if client_data is None or client_data == "":
                    raise InvalidArgument("Client data is required for client_wins")
                document = parse_document(client_data, "client data")
                if not has_payload_fields(kind, document):
                    raise InvalidArgument(
                        f"Client data holds no {kind.label} fields"
                    )
                payload = normalize_payload(kind, document)
                now = self.clock()
                final = self.entity_store.upsert(
                    owner_id,
                    replace(
                        current,
                        payload=payload,
                        # updated_at never moves backwards, even against a
                        # device clock that ran ahead
                        updated_at=max(now, current.updated_at),
                        origin_device_id=device_id,
                    ),
                )
            else:
                final = current

        except SyncError as e:
            logger.error(f"Failed to resolve conflict on {record_id} for {owner_id}: {e}")
            self.log_store.append(
                SyncLogEntry.create(
                    owner_id=owner_id,
                    device_id=device_id,
                    sync_type=SyncType.UPLOAD,
                    record_count=0,
                    sync_time=self.clock(),
                    status=SyncStatus.FAILED,
                    error_message=f"Conflict resolution failed: {e}",
                )
            )
            raise

        log_entry = self.log_store.append(
            SyncLogEntry.create(
                owner_id=owner_id,
                device_id=device_id,
                sync_type=SyncType.UPLOAD,
                record_count=1,
                sync_time=self.clock(),
                status=SyncStatus.SUCCESS,
            )
        )

        logger.info(
            f"Resolved conflict on {kind.label} {record_id} for {owner_id} "
            f"with {policy.value}"
        )
        return ResolutionResult(
            success=True,
            message="Conflict resolved",
            entity=final,
            server_timestamp=server_timestamp,
            log_entry=log_entry,
        )
