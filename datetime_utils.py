from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; every stored value is UTC."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def hours_before(hours: float, *, now: Optional[datetime] = None) -> datetime:
    base = ensure_utc(now) or utc_now()
    return base - timedelta(hours=hours)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def describe_age(dt: Optional[datetime], *, now: Optional[datetime] = None) -> str:
    if dt is None:
        return "never"
    delta = (ensure_utc(now) or utc_now()) - ensure_utc(dt)
    hours = int(delta.total_seconds() // 3600)
    if hours > 0:
        return f"{hours} hours ago"
    minutes = int(delta.total_seconds() // 60)
    if minutes > 0:
        return f"{minutes} minutes ago"
    return "just now"


__all__ = [
    "UTC",
    "describe_age",
    "ensure_utc",
    "hours_before",
    "to_rfc3339_utc",
    "utc_now",
]
