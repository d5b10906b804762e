"""UTC time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(deadline: datetime | None, now: datetime | None = None) -> bool:
    """True when ``deadline`` is set and already behind ``now``."""
    if deadline is None:
        return False
    return as_utc(deadline) < (now or utcnow())
