"""
Exceptions for the sync engine.
"""


class SyncError(Exception):
    """Base exception for sync operations."""


class InvalidArgument(SyncError):
    """Raised for unknown record types, resolutions, or malformed payloads."""


class NotFound(SyncError):
    """Raised when an entity does not exist for the owner."""

    def __init__(self, message: str, entity_id: str | None = None):
        super().__init__(message)
        self.entity_id = entity_id


class StoreError(SyncError):
    """Raised when a store operation fails."""


class StoreUnavailable(StoreError):
    """Raised when the entity store or sync log store cannot be reached."""


class PartialFailure(SyncError):
    """Some entities in a batch were persisted and others failed."""

    def __init__(self, message: str, failed_ids: list[str], statistics=None):
        super().__init__(message)
        self.failed_ids = failed_ids
        self.statistics = statistics
