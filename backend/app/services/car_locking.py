"""
Car soft-lock service.

Grants a time-boxed claim on a car to one browsing session while the
customer fills in the booking form. Every mutation is a single
conditional UPDATE so two replicas can never both win the same car.
The lock is advisory: booking creation re-validates overlaps itself.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow, expires_at, is_expired, remaining_minutes
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    InsufficientPermissionsError,
    LockConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.models.car import Car

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockGrant:
    car_id: int
    session_id: str
    locked_until: datetime


@dataclass(frozen=True)
class LockStatus:
    car_id: int
    locked: bool
    locked_by_other: bool
    locked_until: Optional[datetime]
    remaining_minutes: int


def validate_session_id(session_id: Optional[str]) -> str:
    """Session ids are untrusted client tokens; only their shape is checked."""
    if not session_id or len(session_id.strip()) < settings.min_session_id_length:
        raise ValidationFailedError(
            f"Session ID must be at least {settings.min_session_id_length} characters",
            details={"field": "session_id"}
        )
    return session_id.strip()


def _claim_statement(car_id: int, session_id: str, now: datetime, locked_until: datetime):
    # Free, expired, or already ours: one compare-and-swap
    return (
        update(Car)
        .where(
            Car.id == car_id,
            or_(
                Car.locked_until.is_(None),
                Car.locked_until <= now,
                Car.locked_by_session == session_id,
            ),
        )
        .values(locked_until=locked_until, locked_by_session=session_id)
        .execution_options(synchronize_session=False)
    )


async def _read_lock_fields(db: AsyncSession, car_id: int):
    result = await db.execute(
        select(Car.locked_until, Car.locked_by_session).where(Car.id == car_id)
    )
    return result.one_or_none()


async def acquire_car_lock(
    db: AsyncSession,
    car_id: int,
    session_id: str,
    now: Optional[datetime] = None
) -> LockGrant:
    """
    Acquire or refresh the soft-lock on a car.
    
    A single compare-and-swap: a lock whose expiry is at or before `now`
    counts as free, so no separate expiry pass or retry is needed.
    
    Args:
        db: Database session
        car_id: Car to lock
        session_id: Opaque browsing-session token (>= 10 chars)
        now: Current time (naive UTC), defaults to the clock
    
    Returns:
        LockGrant with the new expiry
    
    Raises:
        ValidationFailedError: session id too short
        ResourceNotFoundError: car does not exist
        LockConflictError: another session holds a live lock
    """
    session_id = validate_session_id(session_id)
    now = now or utcnow()
    locked_until = expires_at(now, settings.car_lock_ttl_minutes)
    
    try:
        result = await db.execute(_claim_statement(car_id, session_id, now, locked_until))
        if result.rowcount == 0:
            row = await _read_lock_fields(db, car_id)
            await db.rollback()
            if row is None:
                raise ResourceNotFoundError("Car", car_id)
            minutes = max(remaining_minutes(row.locked_until, now), 1) if row.locked_until else 1
            logger.info("Lock conflict on car %s, %s minute(s) remaining", car_id, minutes)
            raise LockConflictError(car_id, minutes)
        
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    
    logger.info("Car %s locked until %s", car_id, locked_until.isoformat())
    return LockGrant(car_id=car_id, session_id=session_id, locked_until=locked_until)


async def release_car_lock(
    db: AsyncSession,
    car_id: int,
    session_id: str,
    now: Optional[datetime] = None
) -> bool:
    """
    Release a soft-lock held by session_id.
    
    Double release and release after expiry succeed silently.
    
    Returns:
        True if this call cleared the lock, False if there was nothing to clear
    
    Raises:
        ResourceNotFoundError: car does not exist
        InsufficientPermissionsError: a different session holds a live lock
    """
    session_id = validate_session_id(session_id)
    now = now or utcnow()
    
    try:
        result = await db.execute(
            update(Car)
            .where(Car.id == car_id, Car.locked_by_session == session_id)
            .values(locked_until=None, locked_by_session=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await db.commit()
            logger.info("Car %s unlocked", car_id)
            return True
        
        row = await _read_lock_fields(db, car_id)
        await db.rollback()
    except Exception:
        await db.rollback()
        raise
    
    if row is None:
        raise ResourceNotFoundError("Car", car_id)
    
    if row.locked_by_session is None or is_expired(row.locked_until, now):
        return False
    
    raise InsufficientPermissionsError(
        "Car is locked by another session",
        details={"car_id": car_id}
    )


async def clear_lock_for_session(db: AsyncSession, car_id: int, session_id: str) -> None:
    """
    Drop the session's lock inside the caller's transaction.
    
    Used on final submission; never raises for a lock that is not ours.
    """
    await db.execute(
        update(Car)
        .where(Car.id == car_id, Car.locked_by_session == session_id)
        .values(locked_until=None, locked_by_session=None)
        .execution_options(synchronize_session=False)
    )


async def get_car_lock_status(
    db: AsyncSession,
    car_id: int,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> LockStatus:
    """Report whether a car shows as "in progress" to the given session."""
    now = now or utcnow()
    row = await _read_lock_fields(db, car_id)
    if row is None:
        raise ResourceNotFoundError("Car", car_id)
    
    if is_expired(row.locked_until, now):
        return LockStatus(car_id, False, False, None, 0)
    
    return LockStatus(
        car_id=car_id,
        locked=True,
        locked_by_other=row.locked_by_session != session_id,
        locked_until=row.locked_until,
        remaining_minutes=remaining_minutes(row.locked_until, now),
    )
