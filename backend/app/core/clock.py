"""
Clock and TTL helpers.

All timestamps in the core are naive UTC.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def expires_at(now: datetime, minutes: int) -> datetime:
    return now + timedelta(minutes=minutes)


def is_expired(deadline: Optional[datetime], now: datetime) -> bool:
    """A missing deadline counts as expired."""
    return deadline is None or deadline <= now


def remaining_minutes(deadline: datetime, now: datetime) -> int:
    """Whole minutes left until deadline, rounded up, never below zero."""
    seconds = (deadline - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)
