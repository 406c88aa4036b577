"""
Booking Creator (Domain Logic).

Validates and persists a new booking as one all-or-nothing operation.
Must be transactional: the car row is locked first, so concurrent
creators for the same car run the hold/overlap checks and the insert
one at a time instead of racing between read and write.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow, expires_at
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    DateOverlapError,
    InsufficientPermissionsError,
    NotAvailableError,
    PriceMismatchError,
    ReservationHeldError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.booking.pricing import PricingCalculator
from backend.app.models.booking import Booking
from backend.app.models.car import Car
from backend.app.models.enums import UserRole
from backend.app.models.lead_enums import LeadStatus
from backend.app.models.user import User
from backend.app.schemas.booking import BookingCreate
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.blacklist import is_customer_blacklisted
from backend.app.services.car_locking import clear_lock_for_session
from backend.app.services.overlap_validator import has_active_hold, has_overlap

logger = logging.getLogger(__name__)


def generate_booking_number(now: datetime) -> str:
    """JR-YYYYMMDD-XXXXXX with a random 6-hex-digit suffix."""
    return f"{settings.booking_number_prefix}-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def resolve_booking_user_id(
    requested_user_id: Optional[int],
    caller: Optional[Dict[str, Any]]
) -> Optional[int]:
    """
    Decide which user the booking belongs to.
    
    The submitted user_id is honoured only for the same authenticated
    user or a platform admin; anyone else silently gets a guest booking.
    """
    if requested_user_id is None or caller is None:
        return None
    
    if caller.get("role") == UserRole.PLATFORM_OWNER.value:
        return requested_user_id
    
    if caller.get("user_id") == requested_user_id:
        return requested_user_id
    
    logger.info(
        "Dropping user_id %s from booking submitted by user %s",
        requested_user_id, caller.get("user_id")
    )
    return None


class BookingCreator:
    
    @staticmethod
    async def create(
        db: AsyncSession,
        payload: BookingCreate,
        caller: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Create a booking.
        
        Flow:
        1. Validate date range
        2. Resolve caller identity against user_id
        3. Lock car row, require APPROVED + AVAILABLE
        4. Reject while another NEW booking holds the car
        5. Reject overlapping non-terminal bookings
        6. Reject blacklisted customers
        7. Recompute price, reject drift beyond tolerance
        8-9. Insert with unique booking number, reservation hold
        10. Commit and return
        
        Args:
            db: Database session (this method owns the transaction)
            payload: Validated submission
            caller: Identity payload, None for anonymous
            now: Current time (naive UTC), defaults to the clock
            
        Returns:
            Created Booking
        """
        now = now or utcnow()
        pickup_datetime = payload.pickup_datetime
        return_datetime = payload.return_datetime
        
        # 1. Date range
        if return_datetime <= pickup_datetime:
            raise ValidationFailedError(
                "Return time must be after pickup time",
                details={"field": "return_datetime"}
            )
        
        # 2. Identity
        user_id = resolve_booking_user_id(payload.user_id, caller)
        
        try:
            # 3. Car, locked for the rest of the transaction
            result = await db.execute(
                select(Car).where(Car.id == payload.car_id).with_for_update()
                .execution_options(populate_existing=True)
            )
            car = result.scalar_one_or_none()
            if not car:
                raise ResourceNotFoundError("Car", payload.car_id)
            if not car.is_bookable:
                raise NotAvailableError(car.id)
            
            # 4. Reservation hold
            if await has_active_hold(db, car.id, now):
                raise ReservationHeldError(car.id)
            
            # 5. Overlap
            if await has_overlap(db, car.id, pickup_datetime, return_datetime):
                raise DateOverlapError(car.id)
            
            # 6. Blacklist
            if user_id is not None and await db.get(User, user_id) is None:
                user_id = None
            if await is_customer_blacklisted(db, user_id, payload.customer_phone):
                raise InsufficientPermissionsError("Your account has been suspended")
            
            # 7. Price integrity
            calculated_price = PricingCalculator.total_price(
                car.price_per_day, pickup_datetime, return_datetime
            )
            if not PricingCalculator.within_tolerance(
                payload.total_price, calculated_price, settings.price_tolerance
            ):
                raise PriceMismatchError(payload.total_price, calculated_price)
            
            # 8-9. Insert
            booking = await BookingCreator._insert_with_unique_number(
                db,
                now=now,
                car_id=car.id,
                partner_id=car.partner_id,
                user_id=user_id,
                customer_name=payload.customer_name,
                customer_email=payload.customer_email or "",
                customer_phone=payload.customer_phone,
                customer_note=payload.customer_note,
                pickup_datetime=pickup_datetime,
                return_datetime=return_datetime,
                pickup_location=payload.pickup_location,
                return_location=payload.return_location or payload.pickup_location,
                total_price=calculated_price,
                lead_status=LeadStatus.NEW,
                reserved_until=expires_at(now, settings.reservation_hold_minutes),
            )
            
            if payload.session_id:
                await clear_lock_for_session(db, car.id, payload.session_id)
            
            await log_event(
                db,
                action=AuditAction.BOOKING_CREATED,
                actor=caller,
                entity_type="booking",
                entity_id=booking.id,
                metadata={
                    "booking_number": booking.booking_number,
                    "car_id": car.id,
                    "total_price": str(calculated_price),
                    "guest": user_id is None,
                }
            )
            
            # 10. Commit
            await db.commit()
        except AppException as exc:
            await db.rollback()
            logger.info("Booking rejected for car %s: %s", payload.car_id, exc.error_code)
            raise
        except Exception:
            await db.rollback()
            raise
        
        await db.refresh(booking)
        logger.info(
            "Booking %s created for car %s (%s to %s, %s)",
            booking.booking_number, booking.car_id,
            pickup_datetime.isoformat(), return_datetime.isoformat(), booking.total_price
        )
        return booking
    
    @staticmethod
    async def _insert_with_unique_number(db: AsyncSession, now: datetime, **fields) -> Booking:
        """
        Insert the booking, regenerating the number on a unique violation.
        
        Each attempt runs in a SAVEPOINT so a collision does not abort the
        surrounding transaction or release the car row lock.
        """
        for attempt in range(1, settings.booking_number_max_attempts + 1):
            booking = Booking(booking_number=generate_booking_number(now), **fields)
            try:
                async with db.begin_nested():
                    db.add(booking)
                return booking
            except IntegrityError as exc:
                if "booking_number" not in str(exc.orig):
                    raise
                logger.warning(
                    "Booking number %s collided (attempt %s), regenerating",
                    booking.booking_number, attempt
                )
        
        raise AppException(
            message="Could not allocate a booking number, please retry",
            error_code="ERR_BOOKING_005",
            status_code=503
        )
