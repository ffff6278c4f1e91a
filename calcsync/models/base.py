"""Database configuration and declarative base."""

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


def get_database_url() -> str:
    """Get database URL with proper defaults.

    Uses file-based SQLite for development. Only tests use in-memory
    SQLite for isolation.
    """
    # For tests only, use in-memory SQLite if no explicit URL
    if os.getenv("PYTEST_CURRENT_TEST"):
        return os.getenv("DATABASE_URL", "sqlite:///:memory:")

    from calcsync.server.config import Settings

    return Settings().database_url


def make_engine(database_url: str):
    """Create an engine, sharing one connection for in-memory SQLite."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            # Every session must see the same in-memory database
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(database_url, pool_pre_ping=True)


DATABASE_URL = get_database_url()

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_database(bind=None):
    """Create tables that do not exist yet.

    Schema migrations are handled outside this service; this only makes
    sure a fresh database is usable.
    """
    # Import so the tables are registered on the metadata
    from . import records  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
