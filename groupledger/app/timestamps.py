"""
timestamps.py — JSON format for stored datetimes.

Every timestamp column is DateTime(timezone=True) and is written in UTC.
PostgreSQL returns aware values on reload; SQLite returns naive ones.
Serialisers call isoformat_utc() so responses always carry +00:00.
"""

from __future__ import annotations

from datetime import datetime, timezone


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # Naive values only come back from SQLite, which stored UTC.
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
