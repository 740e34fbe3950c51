"""
Timestamp helpers.

All timestamps are stored as ISO-8601 strings in UTC so rows from SQLite
and Supabase compare and sort the same way.
"""

from __future__ import annotations
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str | datetime) -> datetime:
    """
    Parse a stored timestamp back into an aware UTC datetime.

    Accepts datetimes unchanged (normalized to UTC) so callers can pass
    either form. Raises ValueError for unparseable strings.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Elapsed whole days, floored (6 days 23 hours counts as 6)."""
    return (ensure_utc(later) - ensure_utc(earlier)).days
