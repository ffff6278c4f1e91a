"""Classify a client-submitted entity against the stored copy."""

from enum import Enum

from .entities import Entity
from .kinds import normalize_payload
from .timeutil import as_utc


class Verdict(str, Enum):
    """How an uploaded entity relates to the server's copy.

    NEW: no stored copy, always accepted.
    UNCHANGED: the server holds nothing newer than the client, so the
        client copy is applied.
    CONFLICTING: the client copy is stale (or ambiguous) relative to the
        stored copy and must go through explicit resolution.
    """

    NEW = "new"
    UNCHANGED = "unchanged"
    CONFLICTING = "conflicting"


def same_payload(left: Entity, right: Entity) -> bool:
    return normalize_payload(left.kind, left.payload) == normalize_payload(
        right.kind, right.payload
    )


def classify(client: Entity, server: Entity | None) -> Verdict:
    """Compare an uploaded entity with the stored entity of the same id.

    Equal ``updated_at`` with a different payload cannot be ordered, so it
    is reported as a conflict rather than silently picking a side.
    """
    if server is None:
        return Verdict.NEW

    client_time = as_utc(client.updated_at)
    server_time = as_utc(server.updated_at)

    if server_time > client_time:
        return Verdict.CONFLICTING
    if server_time == client_time and not same_payload(client, server):
        return Verdict.CONFLICTING
    return Verdict.UNCHANGED
