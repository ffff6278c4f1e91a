"""Timestamp helpers.

The engine works with timezone-aware UTC datetimes. The database holds
naive UTC and the wire protocol uses epoch milliseconds for sync marks.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def from_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def to_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)
