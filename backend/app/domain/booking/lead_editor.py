"""
Lead Editor (Domain Logic).

Partner staff correct a lead before the car is handed over: customer
details, locations and rental dates. Date changes are re-validated
against the car's other bookings under the car row lock, and the price
of record is recomputed.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    AppException,
    DateOverlapError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.booking.lead_state_machine import ActorKind, classify_actor
from backend.app.domain.booking.pricing import PricingCalculator
from backend.app.models.booking import Booking
from backend.app.models.car import Car
from backend.app.models.lead_enums import LeadStatus
from backend.app.schemas.lead import LeadEditRequest
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.overlap_validator import has_overlap

logger = logging.getLogger(__name__)

EDITABLE_LEAD_STATUSES = frozenset({LeadStatus.NEW, LeadStatus.CLAIMED})

# Fields ignored when sent as null; the rest may be cleared
REQUIRED_FIELDS = ("customer_name", "customer_phone", "pickup_location", "pickup_datetime", "return_datetime")


def _not_editable(status: Optional[LeadStatus] = None) -> ValidationFailedError:
    details = {"field": "lead_status"}
    if status is not None:
        details["status"] = status.value
    return ValidationFailedError("Bookings can only be edited before pickup", details=details)


def collect_changes(changes: LeadEditRequest) -> Dict[str, Any]:
    """Column values for the fields the caller actually sent."""
    values = changes.model_dump(exclude_unset=True)
    for name in REQUIRED_FIELDS:
        if name in values and values[name] is None:
            del values[name]
    if "customer_email" in values:
        values["customer_email"] = values["customer_email"] or ""
    return values


class LeadEditor:
    
    @staticmethod
    async def edit(
        db: AsyncSession,
        booking_id: int,
        actor: Dict[str, Any],
        changes: LeadEditRequest,
    ) -> Booking:
        """
        Apply a partner's corrections to a NEW or CLAIMED booking.
        
        Flow:
        1. Load booking, require the owning partner or an admin
        2. Require NEW or CLAIMED
        3. Lock the car row, same lock order as booking creation
        4. Dates: return only moves later, range stays valid, no overlap
           with other open bookings on the car
        5. Recompute the price when dates changed
        6. Write guarded by the editable statuses, audit, commit
        """
        try:
            # 1. Booking and authority
            result = await db.execute(
                select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
            )
            booking = result.scalar_one_or_none()
            if not booking:
                raise ResourceNotFoundError("Booking", booking_id)
            if classify_actor(actor, booking) not in (ActorKind.ADMIN, ActorKind.PARTNER):
                raise InsufficientPermissionsError("Only the partner handling this booking can edit it")
            
            # 2. Still before pickup
            if booking.lead_status not in EDITABLE_LEAD_STATUSES:
                raise _not_editable(booking.lead_status)
            
            values = collect_changes(changes)
            
            # 3. Car row
            car_result = await db.execute(
                select(Car).where(Car.id == booking.car_id).with_for_update()
                .execution_options(populate_existing=True)
            )
            car = car_result.scalar_one()
            
            # 4-5. Dates and price
            pickup_datetime = values.get("pickup_datetime", booking.pickup_datetime)
            return_datetime = values.get("return_datetime", booking.return_datetime)
            dates_changed = (
                pickup_datetime != booking.pickup_datetime
                or return_datetime != booking.return_datetime
            )
            if return_datetime < booking.return_datetime:
                raise ValidationFailedError(
                    "The return time can only be moved later",
                    details={"field": "return_datetime"}
                )
            if return_datetime <= pickup_datetime:
                raise ValidationFailedError(
                    "Return time must be after pickup time",
                    details={"field": "return_datetime"}
                )
            previous_price = booking.total_price
            if dates_changed:
                if await has_overlap(
                    db, car.id, pickup_datetime, return_datetime, exclude_booking_id=booking.id
                ):
                    raise DateOverlapError(car.id)
                values["total_price"] = PricingCalculator.total_price(
                    car.price_per_day, pickup_datetime, return_datetime
                )
            
            if "return_location" in values and not values["return_location"]:
                values["return_location"] = values.get("pickup_location", booking.pickup_location)
            
            # 6. Write
            if values:
                write = await db.execute(
                    update(Booking)
                    .where(
                        Booking.id == booking.id,
                        Booking.lead_status.in_(list(EDITABLE_LEAD_STATUSES)),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if write.rowcount != 1:
                    # Moved past CLAIMED after we read it
                    raise _not_editable()
                await db.refresh(booking)
            
            await log_event(
                db,
                action=AuditAction.LEAD_EDITED,
                actor=actor,
                entity_type="booking",
                entity_id=booking.id,
                metadata={
                    "fields": sorted(values),
                    "previous_price": str(previous_price),
                    "total_price": str(booking.total_price),
                }
            )
            await db.commit()
        except AppException as exc:
            await db.rollback()
            logger.info("Edit of booking %s rejected: %s", booking_id, exc.error_code)
            raise
        except Exception:
            await db.rollback()
            raise
        
        logger.info("Booking %s edited (%s)", booking_id, ", ".join(sorted(values)) or "no changes")
        return booking
