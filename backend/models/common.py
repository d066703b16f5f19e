"""Shared column helpers for table models."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    # Python-side timestamps keep microsecond precision on every backend,
    # which keyset pagination relies on for (created_at, id) comparisons.
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
