"""Datetime helpers shared by services and the reminder scheduler."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Return value as an aware UTC datetime.

    Naive values are treated as UTC (SQLite drops tzinfo on the way back out).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_minutes_until(target: datetime, now: datetime) -> int:
    """Minutes from now until target, rounded down (30s late -> -1)."""
    delta = ensure_utc(target) - ensure_utc(now)
    return math.floor(delta.total_seconds() / 60)
