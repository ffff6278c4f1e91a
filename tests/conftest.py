"""
Shared fixtures for calcsync tests.

Every test gets its own in-memory SQLite database; the FastAPI app is
pointed at it through dependency overrides.
"""

import os

# Must be set before calcsync.models builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from calcsync.models import get_db, init_database
from calcsync.models.base import make_engine
from calcsync.sync import (
    Entity,
    RecordKind,
    SqlEntityStore,
    SqlSyncLogStore,
    SyncService,
)

T0 = datetime(2024, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock that moves forward one step per reading."""

    def __init__(self, start=datetime(2025, 1, 1, tzinfo=timezone.utc), step=None):
        self.now = start
        self.step = step or timedelta(seconds=1)

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def engine():
    """Fresh in-memory database with all tables."""
    engine = make_engine("sqlite:///:memory:")
    init_database(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def entity_store(db_session):
    return SqlEntityStore(db_session)


@pytest.fixture
def log_store(db_session):
    return SqlSyncLogStore(db_session)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def service(entity_store, log_store, clock):
    return SyncService(entity_store, log_store, clock=clock)


@pytest.fixture
def calc_record():
    """Factory for calculation record entities."""

    def make(record_id="r1", updated_at=T0, created_at=None, **payload):
        payload.setdefault("calculation_type", "stem")
        payload.setdefault("parameters", {"outerDiameter": 114.3})
        payload.setdefault("results", {})
        return Entity(
            id=record_id,
            kind=RecordKind.CALCULATION_RECORD,
            payload=payload,
            created_at=created_at or updated_at,
            updated_at=updated_at,
        )

    return make


@pytest.fixture
def parameter_set():
    """Factory for parameter set entities."""

    def make(set_id="p1", updated_at=T0, created_at=None, **payload):
        payload.setdefault("name", "Standard stem")
        payload.setdefault("calculation_type", "stem")
        payload.setdefault("parameters", {"wallThickness": 6.02})
        payload.setdefault("is_preset", False)
        return Entity(
            id=set_id,
            kind=RecordKind.PARAMETER_SET,
            payload=payload,
            created_at=created_at or updated_at,
            updated_at=updated_at,
        )

    return make


@pytest.fixture
def current_user():
    """Mutable holder for the user id the API treats as authenticated."""
    return {"user_id": "user-1"}


@pytest.fixture
def api_client(session_factory, current_user):
    """TestClient for the app, bound to the test database."""
    from calcsync.server.app import app
    from calcsync.server.auth import current_user_id

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[current_user_id] = lambda: current_user["user_id"]

    client = TestClient(app, raise_server_exceptions=False)
    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Authentication headers for test requests."""
    return {"Authorization": "Bearer test-token"}
