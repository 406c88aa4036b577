"""
Booking overlap validation.

Single source of truth for double-booking prevention. Two rental windows
[p1, r1) and [p2, r2) overlap iff p1 < r2 and p2 < r1, so a booking that
returns exactly when the next one picks up does not conflict.

has_overlap() must run inside the same transaction as the insert it
guards, after the car row has been locked (see booking_creator).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.booking import Booking
from backend.app.models.lead_enums import TERMINAL_LEAD_STATUSES, LeadStatus


def intervals_overlap(
    pickup_a: datetime,
    return_a: datetime,
    pickup_b: datetime,
    return_b: datetime
) -> bool:
    """Half-open interval intersection test."""
    return pickup_a < return_b and pickup_b < return_a


def _conflicting_bookings(
    car_id: int,
    pickup_datetime: datetime,
    return_datetime: datetime,
    exclude_booking_id: Optional[int] = None
):
    query = select(Booking.id).where(
        Booking.car_id == car_id,
        Booking.lead_status.notin_(list(TERMINAL_LEAD_STATUSES)),
        Booking.pickup_datetime < return_datetime,
        Booking.return_datetime > pickup_datetime,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    return query


async def has_overlap(
    db: AsyncSession,
    car_id: int,
    pickup_datetime: datetime,
    return_datetime: datetime,
    exclude_booking_id: Optional[int] = None
) -> bool:
    """
    Check whether any non-terminal booking on the car overlaps the range.
    
    Args:
        db: Database session (caller's transaction)
        car_id: Car to check
        pickup_datetime: Start of the requested range (inclusive)
        return_datetime: End of the requested range (exclusive)
        exclude_booking_id: Booking to ignore, e.g. when re-validating an edit
    
    Returns:
        True if a conflicting booking exists
    """
    result = await db.execute(
        _conflicting_bookings(car_id, pickup_datetime, return_datetime, exclude_booking_id).limit(1)
    )
    return result.first() is not None


async def has_active_hold(db: AsyncSession, car_id: int, now: datetime) -> bool:
    """
    Check for a NEW booking whose reservation hold has not lapsed.
    
    The hold is car-wide regardless of dates: it guards near-simultaneous
    submits, not calendar conflicts.
    """
    result = await db.execute(
        select(Booking.id).where(
            Booking.car_id == car_id,
            Booking.lead_status == LeadStatus.NEW,
            Booking.reserved_until > now,
        ).limit(1)
    )
    return result.first() is not None


async def count_open_bookings(
    db: AsyncSession,
    car_id: int,
    exclude_booking_id: Optional[int] = None
) -> int:
    """Count bookings on the car that are not COMPLETED or CANCELLED."""
    query = select(func.count(Booking.id)).where(
        Booking.car_id == car_id,
        Booking.lead_status.notin_(list(TERMINAL_LEAD_STATUSES)),
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query)
    return result.scalar()
