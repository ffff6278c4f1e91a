"""Tests for the sync HTTP client, run against the app in-process."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from calcsync.client import SyncClient
from calcsync.sync import (
    InvalidArgument,
    NotFound,
    PartialFailure,
    SqlEntityStore,
    StoreUnavailable,
)


def record(record_id="r1", updated_at="2024-06-01T08:00:00Z", **fields):
    body = {
        "id": record_id,
        "calculationType": "stem",
        "parameters": {"outerDiameter": 114.3},
        "results": {},
        "createdAt": "2024-06-01T08:00:00Z",
        "updatedAt": updated_at,
    }
    body.update(fields)
    return body


@pytest.fixture
def device_a(api_client):
    return SyncClient(
        "http://testserver", "test-token", device_id="dev-a", http_client=api_client
    )


@pytest.fixture
def device_b(api_client):
    return SyncClient(
        "http://testserver", "test-token", device_id="dev-b", http_client=api_client
    )


class TestSyncClient:
    def test_sets_bearer_token(self, device_a, api_client):
        assert api_client.headers["Authorization"] == "Bearer test-token"

    def test_health_check(self, device_a):
        assert device_a.health_check() == {"status": "ok", "database": "connected"}

    def test_two_devices_converge(self, device_a, device_b):
        first = device_a.sync_calculation_records([record()])
        assert first["statistics"]["uploadedCount"] == 1

        pulled = device_b.sync_calculation_records([], last_sync_time=0)

        assert [item["id"] for item in pulled["data"]] == ["r1"]

    def test_last_sync_time_accepts_datetime(self, device_a):
        device_a.sync_calculation_records([record()])

        body = device_a.sync_calculation_records(
            [], last_sync_time=datetime(2024, 6, 1, 9, tzinfo=timezone.utc)
        )

        assert body["data"] == []

    def test_partial_failure_raises(self, device_a):
        with pytest.raises(PartialFailure) as exc_info:
            device_a.sync_calculation_records(
                [record("bad", parameters="{oops"), record("good")]
            )

        assert exc_info.value.failed_ids == ["bad"]
        assert exc_info.value.statistics["uploadedCount"] == 1

    def test_partial_failure_can_be_inspected(self, device_a):
        body = device_a.sync_calculation_records(
            [record("bad", parameters="{oops")], raise_on_failure=False
        )

        assert body["failed"][0]["id"] == "bad"

    def test_batch_partial_failure(self, device_a):
        with pytest.raises(PartialFailure) as exc_info:
            device_a.batch_sync(
                calculation_records=[record("bad", results="[]")],
                parameter_sets=[
                    {
                        "id": "p1",
                        "name": "Preset",
                        "createdAt": "2024-06-01T08:00:00Z",
                        "updatedAt": "2024-06-01T08:00:00Z",
                    }
                ],
            )

        assert exc_info.value.failed_ids == ["bad"]
        assert exc_info.value.statistics["uploadedCount"] == 1

    def test_unavailable_store_raises(self, device_a):
        with patch.object(
            SqlEntityStore, "get", side_effect=StoreUnavailable("database unreachable")
        ):
            with pytest.raises(StoreUnavailable, match="database unreachable"):
                device_a.sync_calculation_records([record()], raise_on_failure=False)

    def test_batch_unavailable_store_raises(self, device_a):
        with patch.object(
            SqlEntityStore,
            "list_since",
            side_effect=StoreUnavailable("database unreachable"),
        ):
            with pytest.raises(StoreUnavailable):
                device_a.batch_sync(parameter_sets=[])

    def test_conflict_then_resolve(self, device_a, device_b):
        device_a.sync_calculation_records([record(updated_at="2024-06-01T10:00:00Z")])

        body = device_b.sync_calculation_records([record(results={"mine": True})])
        assert body["statistics"]["conflictCount"] == 1

        resolved = device_b.resolve_conflict(
            "r1",
            "calculation_record",
            "client_wins",
            {"calculationType": "stem", "results": {"mine": True}},
        )
        assert resolved["success"] is True

        records = device_a.get_calculation_records()
        assert records[0]["results"] == {"mine": True}

    def test_resolve_missing_record(self, device_a):
        with pytest.raises(NotFound):
            device_a.resolve_conflict("ghost", "calculation_record", "server_wins")

    def test_resolve_bad_record_type(self, device_a):
        with pytest.raises(InvalidArgument, match="Unsupported record type"):
            device_a.resolve_conflict("r1", "invoice", "server_wins")

    def test_parameter_sets(self, device_a):
        device_a.sync_parameter_sets(
            [
                {
                    "id": "p1",
                    "name": "Preset",
                    "isPreset": True,
                    "createdAt": "2024-06-01T08:00:00Z",
                    "updatedAt": "2024-06-01T08:00:00Z",
                }
            ]
        )

        sets = device_a.get_parameter_sets(since=0)
        assert sets[0]["isPreset"] is True

    def test_logs_and_status(self, device_a, device_b):
        device_a.sync_calculation_records([record()])
        device_b.sync_calculation_records([])

        logs = device_a.get_sync_logs(device_id="dev-b")
        assert logs["totalCount"] == 1
        assert logs["logs"][0]["syncType"] == "download"

        status = device_a.get_sync_status()
        assert len(status["recentSyncs"]) == 2

    def test_context_manager_closes(self, api_client):
        with SyncClient(
            "http://testserver", "token", http_client=api_client
        ) as client:
            assert client.health_check()["status"] == "ok"

        assert api_client.is_closed
