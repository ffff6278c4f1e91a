"""Request and response models for the sync API.

Field names are camelCase on the wire; snake_case is accepted on input
too. Timestamps marking sync progress are epoch milliseconds, entity
timestamps are ISO 8601.
"""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from calcsync.sync import (
    BatchSyncResult,
    Entity,
    RecordKind,
    ResolutionResult,
    SyncLogEntry,
    SyncLogPage,
    SyncResult,
    SyncStatistics,
)
from calcsync.sync.timeutil import to_millis


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Entities


class CalculationRecordDto(CamelModel):
    id: str
    calculation_type: str = ""
    # JSON object, or a JSON-encoded string holding one
    parameters: dict | str = Field(default_factory=dict)
    results: dict | str = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    device_id: Optional[str] = None

    def to_entity(self) -> Entity:
        return Entity(
            id=self.id,
            kind=RecordKind.CALCULATION_RECORD,
            payload={
                "calculation_type": self.calculation_type,
                "parameters": self.parameters,
                "results": self.results,
            },
            created_at=self.created_at,
            updated_at=self.updated_at,
            origin_device_id=self.device_id,
        )


class ParameterSetDto(CamelModel):
    id: str
    name: str = ""
    calculation_type: str = ""
    parameters: dict | str = Field(default_factory=dict)
    is_preset: bool = False
    created_at: datetime
    updated_at: datetime
    device_id: Optional[str] = None

    def to_entity(self) -> Entity:
        return Entity(
            id=self.id,
            kind=RecordKind.PARAMETER_SET,
            payload={
                "name": self.name,
                "calculation_type": self.calculation_type,
                "parameters": self.parameters,
                "is_preset": self.is_preset,
            },
            created_at=self.created_at,
            updated_at=self.updated_at,
            origin_device_id=self.device_id,
        )


DTO_TYPES = {
    RecordKind.CALCULATION_RECORD: CalculationRecordDto,
    RecordKind.PARAMETER_SET: ParameterSetDto,
}


def entity_to_dto(entity: Entity):
    dto_type = DTO_TYPES[RecordKind.parse(entity.kind)]
    return dto_type(
        id=entity.id,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
        device_id=entity.origin_device_id,
        **entity.payload,
    )


EntityDto = TypeVar("EntityDto", CalculationRecordDto, ParameterSetDto)


# Sync requests


class CalculationRecordSyncRequest(CamelModel):
    device_id: str = Field(min_length=1, max_length=100)
    last_sync_time: Optional[int] = None
    records: List[CalculationRecordDto] = Field(default_factory=list)


class ParameterSetSyncRequest(CamelModel):
    device_id: str = Field(min_length=1, max_length=100)
    last_sync_time: Optional[int] = None
    parameter_sets: List[ParameterSetDto] = Field(default_factory=list)


class BatchSyncRequest(CamelModel):
    device_id: str = Field(min_length=1, max_length=100)
    last_sync_time: Optional[int] = None
    calculation_records: List[CalculationRecordDto] = Field(default_factory=list)
    parameter_sets: List[ParameterSetDto] = Field(default_factory=list)


class ConflictResolutionRequest(CamelModel):
    record_id: str = Field(min_length=1)
    record_type: str
    resolution: str
    client_data: dict | str | None = None
    device_id: str = Field(min_length=1, max_length=100)


# Sync responses


class SyncStatisticsDto(CamelModel):
    uploaded_count: int = 0
    downloaded_count: int = 0
    conflict_count: int = 0
    failed_count: int = 0
    duration_ms: int = 0

    @classmethod
    def from_statistics(cls, stats: SyncStatistics) -> "SyncStatisticsDto":
        return cls(
            uploaded_count=stats.uploaded_count,
            downloaded_count=stats.downloaded_count,
            conflict_count=stats.conflict_count,
            failed_count=stats.failed_count,
            duration_ms=stats.duration_ms,
        )


class ConflictDto(CamelModel, Generic[EntityDto]):
    id: str
    client_updated_at: datetime
    server_updated_at: datetime
    server_copy: EntityDto


class FailedEntityDto(CamelModel):
    id: str
    error: str


class SyncResponse(CamelModel, Generic[EntityDto]):
    success: bool
    message: str = ""
    error_code: Optional[str] = None
    data: List[EntityDto] = Field(default_factory=list)
    conflicts: List[ConflictDto[EntityDto]] = Field(default_factory=list)
    failed: List[FailedEntityDto] = Field(default_factory=list)
    statistics: SyncStatisticsDto = Field(default_factory=SyncStatisticsDto)
    server_timestamp: int

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResponse":
        return cls(
            success=result.success,
            message=result.message,
            error_code=result.error_code,
            data=[entity_to_dto(entity) for entity in result.download],
            conflicts=[
                {
                    "id": conflict.entity_id,
                    "client_updated_at": conflict.client_updated_at,
                    "server_updated_at": conflict.server_updated_at,
                    "server_copy": entity_to_dto(conflict.server_entity),
                }
                for conflict in result.conflicts
            ],
            failed=[
                FailedEntityDto(id=failure.entity_id, error=failure.error)
                for failure in result.failed
            ],
            statistics=SyncStatisticsDto.from_statistics(result.statistics),
            server_timestamp=to_millis(result.server_timestamp),
        )


class BatchSyncResponse(CamelModel):
    success: bool
    message: str = ""
    calculation_records: SyncResponse[CalculationRecordDto]
    parameter_sets: SyncResponse[ParameterSetDto]
    overall_statistics: SyncStatisticsDto
    server_timestamp: int

    @classmethod
    def from_result(cls, result: BatchSyncResult) -> "BatchSyncResponse":
        return cls(
            success=result.success,
            message=result.message,
            calculation_records=SyncResponse[CalculationRecordDto].from_result(
                result.calculation_result
            ),
            parameter_sets=SyncResponse[ParameterSetDto].from_result(
                result.parameter_result
            ),
            overall_statistics=SyncStatisticsDto.from_statistics(
                result.overall_statistics
            ),
            server_timestamp=to_millis(result.server_timestamp),
        )


class ConflictResolutionResponse(CamelModel):
    success: bool
    message: str = ""
    resolved_data: CalculationRecordDto | ParameterSetDto | None = None
    server_timestamp: int

    @classmethod
    def from_result(cls, result: ResolutionResult) -> "ConflictResolutionResponse":
        return cls(
            success=result.success,
            message=result.message,
            resolved_data=entity_to_dto(result.entity),
            server_timestamp=to_millis(result.server_timestamp),
        )


# Sync logs


class SyncLogDto(CamelModel):
    id: str
    user_id: str
    device_id: str
    sync_type: str
    record_count: int
    sync_time: datetime
    status: str
    error_message: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: SyncLogEntry) -> "SyncLogDto":
        return cls(
            id=entry.id,
            user_id=entry.owner_id,
            device_id=entry.device_id,
            sync_type=entry.sync_type.value,
            record_count=entry.record_count,
            sync_time=entry.sync_time,
            status=entry.status.value,
            error_message=entry.error_message,
        )


class SyncLogResponse(CamelModel):
    logs: List[SyncLogDto]
    total_count: int
    current_page: int
    page_size: int
    total_pages: int

    @classmethod
    def from_page(cls, page: SyncLogPage) -> "SyncLogResponse":
        return cls(
            logs=[SyncLogDto.from_entry(entry) for entry in page.logs],
            total_count=page.total_count,
            current_page=page.page,
            page_size=page.page_size,
            total_pages=page.total_pages,
        )


class SyncStatusResponse(CamelModel):
    recent_syncs: List[SyncLogDto]
    server_timestamp: int


# Entity pulls


class EntityListResponse(CamelModel, Generic[EntityDto]):
    success: bool = True
    message: str = ""
    data: List[EntityDto]
    server_timestamp: int


# Shared


class HealthResponse(BaseModel):
    status: str
    database: str


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = None

