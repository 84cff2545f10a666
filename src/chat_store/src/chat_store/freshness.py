"""Cache freshness policy for users and channels."""

from __future__ import annotations

from datetime import datetime, timezone

from chat_store.config import FETCH_THRESHOLD


def utcnow() -> datetime:
    """Return the current aware UTC time."""
    return datetime.now(timezone.utc)


def is_stale(last_fetched_at: datetime | None, now: datetime | None = None) -> bool:
    """Return True when a cached collection should be refetched.

    Args:
        last_fetched_at: When the collection was last fetched, if ever.
        now: Reference time; defaults to the current UTC time.

    Returns:
        True if never fetched or older than ``FETCH_THRESHOLD``.

    """
    if last_fetched_at is None:
        return True
    reference = now or utcnow()
    return reference - last_fetched_at > FETCH_THRESHOLD
