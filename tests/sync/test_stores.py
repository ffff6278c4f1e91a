"""Tests for the SQLAlchemy entity and sync log stores."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from calcsync.sync import (
    RecordKind,
    StoreError,
    StoreUnavailable,
    SyncLogEntry,
    SyncLogQuery,
    SyncStatus,
    SyncType,
)

T0 = datetime(2024, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


def log_entry(device_id="dev-a", minutes=0, **fields):
    fields.setdefault("owner_id", "user-1")
    fields.setdefault("sync_type", SyncType.UPLOAD)
    fields.setdefault("record_count", 1)
    fields.setdefault("status", SyncStatus.SUCCESS)
    return SyncLogEntry.create(
        device_id=device_id, sync_time=T0 + timedelta(minutes=minutes), **fields
    )


class TestSqlEntityStore:
    def test_upsert_then_get(self, entity_store, calc_record):
        stored = entity_store.upsert(
            "user-1", replace(calc_record(), origin_device_id="dev-a")
        )

        fetched = entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1")
        assert fetched == stored
        assert fetched.payload == {
            "calculation_type": "stem",
            "parameters": {"outerDiameter": 114.3},
            "results": {},
        }
        assert fetched.updated_at == T0
        assert fetched.owner_id == "user-1"
        assert fetched.origin_device_id == "dev-a"

    def test_get_missing_returns_none(self, entity_store):
        assert entity_store.get("user-1", RecordKind.PARAMETER_SET, "nope") is None

    def test_same_id_under_other_owner_is_separate(self, entity_store, calc_record):
        entity_store.upsert("user-1", calc_record(results={"ok": True}))
        entity_store.upsert("user-2", calc_record(results={"ok": False}))

        mine = entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1")
        theirs = entity_store.get("user-2", RecordKind.CALCULATION_RECORD, "r1")
        assert mine.payload["results"] == {"ok": True}
        assert theirs.payload["results"] == {"ok": False}

    def test_upsert_replaces_payload(self, entity_store, parameter_set):
        entity_store.upsert("user-1", parameter_set())
        entity_store.upsert(
            "user-1",
            parameter_set(
                updated_at=T0 + timedelta(hours=1), name="Renamed", is_preset=True
            ),
        )

        stored = entity_store.get("user-1", RecordKind.PARAMETER_SET, "p1")
        assert stored.payload["name"] == "Renamed"
        assert stored.payload["is_preset"] is True
        assert stored.updated_at == T0 + timedelta(hours=1)

    def test_upsert_keeps_created_at(self, entity_store, calc_record):
        entity_store.upsert("user-1", calc_record())
        entity_store.upsert(
            "user-1",
            calc_record(
                updated_at=T0 + timedelta(hours=1),
                created_at=T0 + timedelta(hours=1),
            ),
        )

        stored = entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1")
        assert stored.created_at == T0

    def test_upsert_refuses_older_timestamp(self, entity_store, calc_record):
        entity_store.upsert("user-1", calc_record(updated_at=T0 + timedelta(hours=1)))

        with pytest.raises(StoreError, match="Refusing"):
            entity_store.upsert("user-1", calc_record(updated_at=T0))

        stored = entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1")
        assert stored.updated_at == T0 + timedelta(hours=1)

    def test_list_since_filters_and_orders(self, entity_store, calc_record):
        for index in range(3):
            entity_store.upsert(
                "user-1",
                calc_record(f"r{index}", updated_at=T0 + timedelta(minutes=index)),
            )
        entity_store.upsert("user-2", calc_record("other"))

        everything = entity_store.list_since("user-1", RecordKind.CALCULATION_RECORD)
        assert [e.id for e in everything] == ["r2", "r1", "r0"]

        newer = entity_store.list_since(
            "user-1", RecordKind.CALCULATION_RECORD, T0 + timedelta(minutes=1)
        )
        assert [e.id for e in newer] == ["r2"]

    def test_list_since_is_per_kind(self, entity_store, calc_record, parameter_set):
        entity_store.upsert("user-1", calc_record())
        entity_store.upsert("user-1", parameter_set())

        sets = entity_store.list_since("user-1", RecordKind.PARAMETER_SET)
        assert [e.id for e in sets] == ["p1"]

    def test_operational_error_becomes_store_unavailable(
        self, entity_store, db_session, calc_record
    ):
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))
        with patch.object(db_session, "get", side_effect=error):
            with pytest.raises(StoreUnavailable, match="database is locked"):
                entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1")

    def test_other_database_errors_become_store_error(
        self, entity_store, db_session, calc_record
    ):
        error = IntegrityError("INSERT", {}, Exception("constraint failed"))
        with patch.object(db_session, "commit", side_effect=error):
            with pytest.raises(StoreError) as exc_info:
                entity_store.upsert("user-1", calc_record())

        assert not isinstance(exc_info.value, StoreUnavailable)
        assert entity_store.get("user-1", RecordKind.CALCULATION_RECORD, "r1") is None

    def test_ping(self, entity_store, db_session):
        assert entity_store.ping() is True

        error = OperationalError("SELECT 1", {}, Exception("gone"))
        with patch.object(db_session, "execute", side_effect=error):
            assert entity_store.ping() is False


class TestSqlSyncLogStore:
    def test_append_and_query(self, log_store):
        entry = log_store.append(log_entry(error_message=None))

        page = log_store.query("user-1", SyncLogQuery())
        assert page.logs == [entry]
        assert page.total_count == 1
        assert page.total_pages == 1

    def test_newest_first(self, log_store):
        for minutes in (0, 10, 5):
            log_store.append(log_entry(minutes=minutes))

        page = log_store.query("user-1", SyncLogQuery())
        assert [e.sync_time for e in page.logs] == [
            T0 + timedelta(minutes=10),
            T0 + timedelta(minutes=5),
            T0,
        ]

    def test_scoped_to_owner(self, log_store):
        log_store.append(log_entry())
        log_store.append(log_entry(owner_id="user-2"))

        assert log_store.query("user-2", SyncLogQuery()).total_count == 1

    def test_filters(self, log_store):
        log_store.append(log_entry("dev-a", 0))
        log_store.append(log_entry("dev-b", 1, sync_type=SyncType.DOWNLOAD))
        log_store.append(
            log_entry("dev-a", 2, status=SyncStatus.FAILED, error_message="boom")
        )
        log_store.append(log_entry("dev-a", 3, sync_type=SyncType.BATCH))

        def count(**filters):
            return log_store.query("user-1", SyncLogQuery(**filters)).total_count

        assert count(device_id="dev-a") == 3
        assert count(sync_type=SyncType.DOWNLOAD) == 1
        assert count(status=SyncStatus.FAILED) == 1
        assert count(start_time=T0 + timedelta(minutes=1)) == 3
        assert count(end_time=T0 + timedelta(minutes=1)) == 2
        assert (
            count(
                start_time=T0 + timedelta(minutes=1),
                end_time=T0 + timedelta(minutes=2),
                device_id="dev-a",
            )
            == 1
        )

    def test_pagination(self, log_store):
        for minutes in range(5):
            log_store.append(log_entry(minutes=minutes))

        page = log_store.query("user-1", SyncLogQuery(page=2, page_size=2))
        assert page.total_count == 5
        assert page.total_pages == 3
        assert [e.sync_time for e in page.logs] == [
            T0 + timedelta(minutes=2),
            T0 + timedelta(minutes=1),
        ]

        last = log_store.query("user-1", SyncLogQuery(page=3, page_size=2))
        assert len(last.logs) == 1
