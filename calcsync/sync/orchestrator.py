"""Sync orchestration.

``SyncOrchestrator`` runs one upload/download exchange for one entity
kind and writes exactly one audit entry for it. ``BatchCoordinator``
runs the orchestrator for every kind in a single client request.
"""

import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable

from .detector import Verdict, classify
from .entities import (
    BatchSyncResult,
    Conflict,
    Entity,
    EntityFailure,
    SyncLogEntry,
    SyncResult,
    SyncStatistics,
    SyncStatus,
    SyncType,
)
from .exceptions import InvalidArgument, StoreUnavailable, SyncError
from .kinds import RecordKind, normalize_payload
from .stores import EntityStore, SyncLogStore
from .timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 64
MAX_ERROR_MESSAGE = 2000


def _summarize_failures(failures: list[EntityFailure]) -> str:
    text = f"{len(failures)} entities failed: " + "; ".join(
        f"{f.entity_id} ({f.error})" for f in failures
    )
    if len(text) > MAX_ERROR_MESSAGE:
        text = text[: MAX_ERROR_MESSAGE - 3] + "..."
    return text


class SyncOrchestrator:
    """Execute sync exchanges against injected stores.

    The orchestrator holds no per-owner state; everything it needs comes
    in through the call or the stores it was given.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        log_store: SyncLogStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.entity_store = entity_store
        self.log_store = log_store
        self.clock = clock

    def sync(
        self,
        owner_id: str,
        device_id: str,
        kind: RecordKind | str,
        entities: Iterable[Entity],
        last_sync_time: datetime | None = None,
        sync_type: SyncType | None = None,
    ) -> SyncResult:
        """Upload a client batch and compute the matching download batch.

        Args:
            owner_id: Authenticated user the entities belong to
            device_id: Device performing the sync
            kind: Entity kind of every entity in the batch
            entities: Upload batch (may be empty for a pure download)
            last_sync_time: Server timestamp of the device's previous sync,
                or None for a full download
            sync_type: Audit type to record; defaults to ``upload`` when
                the batch is non-empty and ``download`` otherwise

        Returns:
            SyncResult with accepted, conflicting and failed entities, the
            download batch, statistics, and the audit entry. Store failures
            during the exchange are reported in the result.

        Raises:
            StoreError: If the audit entry itself cannot be written
        """
        kind = RecordKind.parse(kind)
        entities = list(entities)
        started = time.monotonic()
        result = SyncResult(kind=kind, server_timestamp=self.clock())
        error_message = None

        try:
            self._upload(owner_id, device_id, kind, entities, result)

            applied_ids = {entity.id for entity in result.accepted}
            result.download = [
                entity
                for entity in self.entity_store.list_since(
                    owner_id, kind, last_sync_time
                )
                if entity.id not in applied_ids
            ]
        except StoreUnavailable as e:
            result.success = False
            result.error_code = "store_unavailable"
            error_message = str(e)
            logger.error(f"Sync of {kind.label}s for {owner_id} failed: {e}")
        except SyncError as e:
            result.success = False
            result.error_code = "store_error"
            error_message = str(e)
            logger.error(f"Sync of {kind.label}s for {owner_id} failed: {e}")
        except Exception as e:
            result.success = False
            result.error_code = "internal_error"
            error_message = str(e) or type(e).__name__
            logger.error(
                f"Unexpected error syncing {kind.label}s for {owner_id}: {e}",
                exc_info=True,
            )

        stats = result.statistics
        stats.uploaded_count = len(result.accepted)
        stats.downloaded_count = len(result.download)
        stats.conflict_count = len(result.conflicts)
        stats.failed_count = len(result.failed)

        if result.success and result.failed:
            result.success = False
            result.error_code = "partial_failure"
            error_message = _summarize_failures(result.failed)

        if result.success:
            result.message = f"{kind.label.capitalize()} sync succeeded"
        elif result.error_code == "partial_failure":
            result.message = (
                f"{kind.label.capitalize()} sync completed with "
                f"{stats.failed_count} failed entities"
            )
        else:
            result.message = f"{kind.label.capitalize()} sync failed: {error_message}"

        if sync_type is None:
            sync_type = SyncType.UPLOAD if entities else SyncType.DOWNLOAD

        result.log_entry = self.log_store.append(
            SyncLogEntry.create(
                owner_id=owner_id,
                device_id=device_id,
                sync_type=sync_type,
                record_count=stats.uploaded_count + stats.downloaded_count,
                sync_time=self.clock(),
                status=SyncStatus.SUCCESS if result.success else SyncStatus.FAILED,
                error_message=error_message,
            )
        )

        stats.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Synced {kind.label}s for {owner_id} from {device_id}: "
            f"uploaded {stats.uploaded_count}, downloaded {stats.downloaded_count}, "
            f"conflicts {stats.conflict_count}, failed {stats.failed_count}"
        )
        return result

    def _upload(
        self,
        owner_id: str,
        device_id: str,
        kind: RecordKind,
        entities: list[Entity],
        result: SyncResult,
    ) -> None:
        """Apply each entity on its own; one bad entity never stops the rest.

        StoreUnavailable is re-raised because no later entity can succeed.
        """
        for entity in entities:
            try:
                candidate = self._prepare(kind, entity)
                current = self.entity_store.get(owner_id, kind, candidate.id)
                verdict = classify(candidate, current)

                if verdict is Verdict.CONFLICTING:
                    logger.warning(
                        f"Conflict on {kind.label} {candidate.id}: client "
                        f"{candidate.updated_at.isoformat()}, server "
                        f"{current.updated_at.isoformat()}"
                    )
                    result.conflicts.append(
                        Conflict(
                            entity_id=candidate.id,
                            client_updated_at=candidate.updated_at,
                            server_updated_at=current.updated_at,
                            server_entity=current,
                        )
                    )
                    continue

                stored = self.entity_store.upsert(
                    owner_id,
                    replace(
                        candidate,
                        owner_id=owner_id,
                        origin_device_id=device_id,
                        created_at=current.created_at if current else candidate.created_at,
                    ),
                )
                # a repeated id counts once, as its last stored copy
                result.accepted = [e for e in result.accepted if e.id != stored.id]
                result.accepted.append(stored)

            except StoreUnavailable:
                raise
            except SyncError as e:
                logger.error(f"Failed to upload {kind.label} {entity.id}: {e}")
                result.failed.append(EntityFailure(entity_id=entity.id, error=str(e)))

    @staticmethod
    def _prepare(kind: RecordKind, entity: Entity) -> Entity:
        if not entity.id or not entity.id.strip():
            raise InvalidArgument("Entity id must not be empty")
        if len(entity.id) > MAX_ID_LENGTH:
            raise InvalidArgument(f"Entity id longer than {MAX_ID_LENGTH} characters")
        entity_kind = RecordKind.parse(entity.kind)
        if entity_kind is not kind:
            raise InvalidArgument(f"Expected a {kind.label}, got a {entity_kind.label}")

        return replace(
            entity,
            payload=normalize_payload(kind, entity.payload),
            created_at=as_utc(entity.created_at),
            updated_at=as_utc(entity.updated_at),
        )


class BatchCoordinator:
    """Sync every entity kind in one request.

    The per-kind syncs are independent: each is audited on its own and a
    failure in one does not stop or undo the other.
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator

    def batch_sync(
        self,
        owner_id: str,
        device_id: str,
        calculation_records: Iterable[Entity] = (),
        parameter_sets: Iterable[Entity] = (),
        last_sync_time: datetime | None = None,
    ) -> BatchSyncResult:
        started = time.monotonic()
        server_timestamp = self.orchestrator.clock()

        calculation_result = self.orchestrator.sync(
            owner_id,
            device_id,
            RecordKind.CALCULATION_RECORD,
            calculation_records,
            last_sync_time=last_sync_time,
            sync_type=SyncType.BATCH,
        )
        parameter_result = self.orchestrator.sync(
            owner_id,
            device_id,
            RecordKind.PARAMETER_SET,
            parameter_sets,
            last_sync_time=last_sync_time,
            sync_type=SyncType.BATCH,
        )

        overall = SyncStatistics.combined(
            calculation_result.statistics, parameter_result.statistics
        )
        overall.duration_ms = int((time.monotonic() - started) * 1000)

        success = calculation_result.success and parameter_result.success
        if success:
            message = "Batch sync succeeded"
        elif calculation_result.success or parameter_result.success:
            message = "Batch sync partially failed"
        else:
            message = "Batch sync failed"

        logger.info(
            f"Batch sync for {owner_id} from {device_id}: "
            f"uploaded {overall.uploaded_count}, downloaded {overall.downloaded_count}, "
            f"conflicts {overall.conflict_count}, failed {overall.failed_count}"
        )

        return BatchSyncResult(
            server_timestamp=server_timestamp,
            calculation_result=calculation_result,
            parameter_result=parameter_result,
            overall_statistics=overall,
            success=success,
            message=message,
        )
