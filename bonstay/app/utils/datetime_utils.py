"""Timezone-aware timestamp helpers.

All lockout and ticket timestamps are stored as UTC. Some backends (SQLite)
hand them back offset-naive, so comparisons go through ``as_utc``.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time, offset-aware."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
