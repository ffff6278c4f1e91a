"""API routes for device sync."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from calcsync.models import get_db
from calcsync.sync import (
    RecordKind,
    SqlEntityStore,
    SqlSyncLogStore,
    SyncLogQuery,
    SyncService,
    SyncStatus,
    SyncType,
)
from calcsync.sync.exceptions import InvalidArgument
from calcsync.sync.service import parse_millis
from calcsync.sync.timeutil import to_millis, utcnow

from ..auth import current_user_id
from ..config import Settings
from ..schemas import (
    BatchSyncRequest,
    BatchSyncResponse,
    CalculationRecordDto,
    CalculationRecordSyncRequest,
    ConflictResolutionRequest,
    ConflictResolutionResponse,
    EntityListResponse,
    ParameterSetDto,
    ParameterSetSyncRequest,
    SyncLogDto,
    SyncLogResponse,
    SyncResponse,
    SyncStatusResponse,
    entity_to_dto,
)

router = APIRouter()


def get_settings() -> Settings:
    return Settings()


def get_sync_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> SyncService:
    """Build a sync service over the request's database session."""
    return SyncService(
        SqlEntityStore(db),
        SqlSyncLogStore(db),
        max_page_size=settings.logs_max_page_size,
    )


def _parse_choice(enum_type, value: Optional[str], name: str):
    if value is None:
        return None
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        raise InvalidArgument(f"Unsupported {name}: {value}") from None


@router.post("/calculations", response_model=SyncResponse[CalculationRecordDto])
def sync_calculation_records(
    request: CalculationRecordSyncRequest,
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Upload calculation records and download what changed since the last sync."""
    result = service.sync_entities(
        user_id,
        request.device_id,
        RecordKind.CALCULATION_RECORD,
        [record.to_entity() for record in request.records],
        last_sync_time=request.last_sync_time,
    )
    return SyncResponse[CalculationRecordDto].from_result(result)


@router.get(
    "/calculations", response_model=EntityListResponse[CalculationRecordDto]
)
def get_calculation_records(
    since_timestamp: Optional[int] = Query(default=None, alias="sinceTimestamp"),
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Calculation records changed after ``sinceTimestamp`` (epoch millis)."""
    server_timestamp = to_millis(utcnow())
    entities = service.get_entities_since(
        user_id, RecordKind.CALCULATION_RECORD, since_timestamp
    )
    return EntityListResponse[CalculationRecordDto](
        message=f"Fetched {len(entities)} calculation records",
        data=[entity_to_dto(entity) for entity in entities],
        server_timestamp=server_timestamp,
    )


@router.post("/parameters", response_model=SyncResponse[ParameterSetDto])
def sync_parameter_sets(
    request: ParameterSetSyncRequest,
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Upload parameter sets and download what changed since the last sync."""
    result = service.sync_entities(
        user_id,
        request.device_id,
        RecordKind.PARAMETER_SET,
        [parameter_set.to_entity() for parameter_set in request.parameter_sets],
        last_sync_time=request.last_sync_time,
    )
    return SyncResponse[ParameterSetDto].from_result(result)


@router.get("/parameters", response_model=EntityListResponse[ParameterSetDto])
def get_parameter_sets(
    since_timestamp: Optional[int] = Query(default=None, alias="sinceTimestamp"),
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Parameter sets changed after ``sinceTimestamp`` (epoch millis)."""
    server_timestamp = to_millis(utcnow())
    entities = service.get_entities_since(
        user_id, RecordKind.PARAMETER_SET, since_timestamp
    )
    return EntityListResponse[ParameterSetDto](
        message=f"Fetched {len(entities)} parameter sets",
        data=[entity_to_dto(entity) for entity in entities],
        server_timestamp=server_timestamp,
    )


@router.post("/batch", response_model=BatchSyncResponse)
def batch_sync(
    request: BatchSyncRequest,
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Sync calculation records and parameter sets in one request."""
    result = service.batch_sync(
        user_id,
        request.device_id,
        calculation_records=[r.to_entity() for r in request.calculation_records],
        parameter_sets=[p.to_entity() for p in request.parameter_sets],
        last_sync_time=request.last_sync_time,
    )
    return BatchSyncResponse.from_result(result)


@router.post("/resolve-conflicts", response_model=ConflictResolutionResponse)
def resolve_conflict(
    request: ConflictResolutionRequest,
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Resolve a reported conflict with ``client_wins`` or ``server_wins``."""
    result = service.resolve_conflict(
        user_id,
        request.record_id,
        request.record_type,
        request.resolution,
        request.client_data,
        request.device_id,
    )
    return ConflictResolutionResponse.from_result(result)


@router.get("/logs", response_model=SyncLogResponse)
def get_sync_logs(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    start_time: Optional[int] = Query(default=None, alias="startTime"),
    end_time: Optional[int] = Query(default=None, alias="endTime"),
    sync_type: Optional[str] = Query(default=None, alias="syncType"),
    status: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
    settings: Settings = Depends(get_settings),
):
    """Page through the caller's sync log, newest first."""
    query = SyncLogQuery(
        device_id=device_id,
        start_time=parse_millis(start_time),
        end_time=parse_millis(end_time),
        sync_type=_parse_choice(SyncType, sync_type, "sync type"),
        status=_parse_choice(SyncStatus, status, "status"),
        page=page,
        page_size=(
            settings.logs_default_page_size if page_size is None else page_size
        ),
    )
    return SyncLogResponse.from_page(service.get_sync_logs(user_id, query))


@router.get("/status", response_model=SyncStatusResponse)
def get_sync_status(
    user_id: str = Depends(current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """The caller's five most recent sync operations."""
    server_timestamp = to_millis(utcnow())
    page = service.get_sync_status(user_id)
    return SyncStatusResponse(
        recent_syncs=[SyncLogDto.from_entry(entry) for entry in page.logs],
        server_timestamp=server_timestamp,
    )
