"""HTTP client for the calculation sync API."""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx

from calcsync.sync.exceptions import (
    InvalidArgument,
    NotFound,
    PartialFailure,
    StoreUnavailable,
)
from calcsync.sync.timeutil import to_millis

logger = logging.getLogger(__name__)

ERROR_TYPES = {
    400: InvalidArgument,
    404: NotFound,
    503: StoreUnavailable,
}


def _millis(value: datetime | int | None) -> Optional[int]:
    if value is None or isinstance(value, int):
        return value
    return to_millis(value)


class SyncClient:
    """Client for the sync HTTP API, as used by a device."""

    def __init__(
        self,
        base_url: str,
        token: str,
        device_id: str = "",
        timeout: int = 30,
        verify_ssl: bool = True,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize client.

        Args:
            base_url: Sync service URL
            token: Bearer token accepted by the service's auth backend
            device_id: Device identifier sent with sync requests
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            http_client: Pre-built httpx client to send requests through
        """
        self.base_url = base_url.rstrip("/")
        self.device_id = device_id
        self.timeout = timeout

        if http_client is None:
            http_client = httpx.Client(timeout=timeout, verify=verify_ssl)
        http_client.headers["Authorization"] = f"Bearer {token}"
        self.client = http_client

    def _check(self, response: httpx.Response) -> dict:
        """Return the JSON body or raise the matching error.

        Raises:
            InvalidArgument: The service rejected the request (400)
            NotFound: The record does not exist (404)
            StoreUnavailable: The service's store is down (503)
            httpx.HTTPStatusError: Any other failed request
        """
        error_type = ERROR_TYPES.get(response.status_code)
        if error_type is not None:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise error_type(detail)

        response.raise_for_status()
        return response.json()

    @staticmethod
    def _raise_on_unavailable(*results: dict) -> None:
        """Raise when a sync reported its store as down.

        The server answers such syncs with 200 and ``success=false``.
        """
        for result in results:
            if result.get("errorCode") == "store_unavailable":
                raise StoreUnavailable(result.get("message") or "Sync store unavailable")

    @staticmethod
    def _raise_on_failed(body: dict, failed: list[dict]) -> None:
        if failed:
            ids = [item["id"] for item in failed]
            logger.warning(f"Sync reported {len(ids)} failed entities: {ids}")
            raise PartialFailure(
                body.get("message") or f"{len(ids)} entities failed to sync",
                failed_ids=ids,
                statistics=body.get("statistics") or body.get("overallStatistics"),
            )

    def health_check(self) -> dict:
        """Check service health."""
        response = self.client.get(f"{self.base_url}/health", timeout=self.timeout)
        if response.status_code == 503:
            return response.json()
        return self._check(response)

    def sync_calculation_records(
        self,
        records: Iterable[dict[str, Any]] = (),
        last_sync_time: datetime | int | None = None,
        raise_on_failure: bool = True,
    ) -> dict:
        """Upload calculation records and download the server's changes.

        Args:
            records: Calculation records in wire form
            last_sync_time: ``serverTimestamp`` of the previous sync, or None
                for a full download
            raise_on_failure: Raise PartialFailure when entities failed

        Returns:
            The sync response body

        Raises:
            PartialFailure: Some entities could not be stored
            StoreUnavailable: The service reported its store as down
        """
        body = self._check(
            self.client.post(
                f"{self.base_url}/api/sync/calculations",
                json={
                    "deviceId": self.device_id,
                    "lastSyncTime": _millis(last_sync_time),
                    "records": list(records),
                },
            )
        )
        self._raise_on_unavailable(body)
        if raise_on_failure:
            self._raise_on_failed(body, body.get("failed", []))
        return body

    def sync_parameter_sets(
        self,
        parameter_sets: Iterable[dict[str, Any]] = (),
        last_sync_time: datetime | int | None = None,
        raise_on_failure: bool = True,
    ) -> dict:
        """Upload parameter sets and download the server's changes."""
        body = self._check(
            self.client.post(
                f"{self.base_url}/api/sync/parameters",
                json={
                    "deviceId": self.device_id,
                    "lastSyncTime": _millis(last_sync_time),
                    "parameterSets": list(parameter_sets),
                },
            )
        )
        self._raise_on_unavailable(body)
        if raise_on_failure:
            self._raise_on_failed(body, body.get("failed", []))
        return body

    def batch_sync(
        self,
        calculation_records: Iterable[dict[str, Any]] = (),
        parameter_sets: Iterable[dict[str, Any]] = (),
        last_sync_time: datetime | int | None = None,
        raise_on_failure: bool = True,
    ) -> dict:
        """Sync both record kinds in one request."""
        body = self._check(
            self.client.post(
                f"{self.base_url}/api/sync/batch",
                json={
                    "deviceId": self.device_id,
                    "lastSyncTime": _millis(last_sync_time),
                    "calculationRecords": list(calculation_records),
                    "parameterSets": list(parameter_sets),
                },
            )
        )
        self._raise_on_unavailable(body["calculationRecords"], body["parameterSets"])
        if raise_on_failure:
            failed = body["calculationRecords"].get("failed", []) + body[
                "parameterSets"
            ].get("failed", [])
            self._raise_on_failed(body, failed)
        return body

    def get_calculation_records(
        self, since: datetime | int | None = None
    ) -> list[dict]:
        """Calculation records changed after ``since``."""
        params = {}
        if since is not None:
            params["sinceTimestamp"] = _millis(since)
        body = self._check(
            self.client.get(f"{self.base_url}/api/sync/calculations", params=params)
        )
        return body["data"]

    def get_parameter_sets(self, since: datetime | int | None = None) -> list[dict]:
        """Parameter sets changed after ``since``."""
        params = {}
        if since is not None:
            params["sinceTimestamp"] = _millis(since)
        body = self._check(
            self.client.get(f"{self.base_url}/api/sync/parameters", params=params)
        )
        return body["data"]

    def resolve_conflict(
        self,
        record_id: str,
        record_type: str,
        resolution: str,
        client_data: dict | str | None = None,
    ) -> dict:
        """Resolve a conflict reported by an earlier sync.

        Raises:
            NotFound: No such record on the server
            InvalidArgument: Unknown record type or resolution, or bad data
        """
        return self._check(
            self.client.post(
                f"{self.base_url}/api/sync/resolve-conflicts",
                json={
                    "recordId": record_id,
                    "recordType": record_type,
                    "resolution": resolution,
                    "clientData": client_data,
                    "deviceId": self.device_id,
                },
            )
        )

    def get_sync_logs(
        self,
        device_id: Optional[str] = None,
        start_time: datetime | int | None = None,
        end_time: datetime | int | None = None,
        sync_type: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> dict:
        """One page of the caller's sync log."""
        params = {
            "deviceId": device_id,
            "startTime": _millis(start_time),
            "endTime": _millis(end_time),
            "syncType": sync_type,
            "status": status,
            "page": page,
            "pageSize": page_size,
        }
        params = {key: value for key, value in params.items() if value is not None}
        return self._check(
            self.client.get(f"{self.base_url}/api/sync/logs", params=params)
        )

    def get_sync_status(self) -> dict:
        """The caller's most recent syncs and the server time."""
        return self._check(self.client.get(f"{self.base_url}/api/sync/status"))

    def close(self):
        """Close the client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
