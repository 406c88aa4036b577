"""
Lead Status State Machine (Domain Logic).

The transition table below is the only place that decides which status
changes are legal. Every transition is written with a conditional UPDATE
on the status it was validated against, so two concurrent requests on
the same booking cannot both succeed. Side effects (actor stamps,
commission, car release) commit in the same transaction.
"""

import enum
import logging
from datetime import datetime
from typing import Optional, Dict, Any, FrozenSet

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import (
    AppException,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.billing.commission_ledger import CommissionLedger
from backend.app.models.booking import Booking
from backend.app.models.car import Car
from backend.app.models.car_enums import RentalStatus
from backend.app.models.enums import UserRole
from backend.app.models.lead_enums import LeadStatus, TERMINAL_LEAD_STATUSES
from backend.app.models.partner import Partner
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.overlap_validator import count_open_bookings

logger = logging.getLogger(__name__)


LEAD_TRANSITIONS: Dict[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.NEW: frozenset({LeadStatus.CLAIMED, LeadStatus.CANCELLED}),
    LeadStatus.CLAIMED: frozenset({LeadStatus.PICKUP, LeadStatus.CANCELLED}),
    LeadStatus.PICKUP: frozenset({LeadStatus.ACTIVE, LeadStatus.CANCELLED}),
    LeadStatus.ACTIVE: frozenset({LeadStatus.RETURN}),
    LeadStatus.RETURN: frozenset({LeadStatus.COMPLETED}),
    LeadStatus.COMPLETED: frozenset(),
    LeadStatus.CANCELLED: frozenset(),
}

# Customers may only back out before the car is handed over
CUSTOMER_CANCELLABLE = frozenset({LeadStatus.NEW, LeadStatus.CLAIMED})


class ActorKind(str, enum.Enum):
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    CUSTOMER = "CUSTOMER"


def allowed_targets(current: LeadStatus) -> FrozenSet[LeadStatus]:
    return LEAD_TRANSITIONS[current]


def ensure_transition_allowed(current: LeadStatus, target: LeadStatus) -> None:
    """Raise InvalidTransitionError unless target is in current's row."""
    if target not in LEAD_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)


def classify_actor(actor: Optional[Dict[str, Any]], booking: Booking) -> Optional[ActorKind]:
    """How the actor relates to this booking, None if not at all."""
    if not actor:
        return None
    
    role = actor.get("role")
    if role == UserRole.PLATFORM_OWNER.value:
        return ActorKind.ADMIN
    if role == UserRole.PARTNER_ADMIN.value and actor.get("partner_id") == booking.partner_id:
        return ActorKind.PARTNER
    if booking.user_id is not None and actor.get("user_id") == booking.user_id:
        return ActorKind.CUSTOMER
    return None


def authorize_transition(kind: Optional[ActorKind], current: LeadStatus, target: LeadStatus) -> None:
    """
    Partner staff and admins drive the whole lifecycle; a customer may
    only cancel their own booking from NEW or CLAIMED.
    """
    if kind in (ActorKind.ADMIN, ActorKind.PARTNER):
        return
    
    if kind == ActorKind.CUSTOMER:
        if target == LeadStatus.CANCELLED and current in CUSTOMER_CANCELLABLE:
            return
        raise InsufficientPermissionsError(
            "Customers can only cancel bookings that have not been picked up",
            details={"from": current.value, "to": target.value}
        )
    
    raise InsufficientPermissionsError("You do not have permission to manage this booking")


def _side_effect_values(
    target: LeadStatus,
    actor_id: Optional[int],
    now: datetime,
    note: Optional[str]
) -> Dict[str, Any]:
    if target == LeadStatus.CLAIMED:
        return {"claimed_by_id": actor_id, "claimed_at": now}
    if target == LeadStatus.PICKUP:
        return {"pickup_confirmed_by_id": actor_id, "pickup_confirmed_at": now}
    if target == LeadStatus.RETURN:
        return {"return_confirmed_by_id": actor_id, "return_confirmed_at": now}
    if target == LeadStatus.COMPLETED:
        return {"completed_at": now}
    if target == LeadStatus.CANCELLED:
        return {"cancelled_by_id": actor_id, "cancelled_at": now, "cancellation_reason": note}
    return {}


class LeadStateMachine:
    
    @staticmethod
    async def transition(
        db: AsyncSession,
        booking_id: int,
        actor: Dict[str, Any],
        target: LeadStatus,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Move a booking to target status.
        
        Flow:
        1. Load booking (NotFound)
        2. Check the actor relates to the booking (Forbidden)
        3. Check the transition table (InvalidTransition)
        4. Check the actor may perform this transition (Forbidden)
        5. Lock the car row for terminal transitions
        6. Conditional status write, re-validating the from-state
        7. COMPLETED: append commission
        8. Terminal: release the car if nothing else is open on it
        9. Audit + commit
        
        Args:
            db: Database session (this method owns the transaction)
            booking_id: Booking to move
            actor: Identity payload of the caller
            target: Requested status
            note: Cancellation reason (required for partner/admin cancellation)
            now: Current time (naive UTC), defaults to the clock
            
        Returns:
            Updated Booking
        """
        now = now or utcnow()
        note = note.strip() if note and note.strip() else None
        
        try:
            # 1. Booking
            result = await db.execute(
                select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
            )
            booking = result.scalar_one_or_none()
            if not booking:
                raise ResourceNotFoundError("Booking", booking_id)
            current = booking.lead_status
            
            # 2-4. Authority and legality
            kind = classify_actor(actor, booking)
            if kind is None:
                raise InsufficientPermissionsError("You do not have permission to manage this booking")
            ensure_transition_allowed(current, target)
            authorize_transition(kind, current, target)
            
            if target == LeadStatus.CANCELLED and kind != ActorKind.CUSTOMER and not note:
                raise ValidationFailedError(
                    "A cancellation reason is required when rejecting a booking",
                    details={"field": "note"}
                )
            
            # 5. Car row first, same lock order as booking creation
            car = None
            if target in TERMINAL_LEAD_STATUSES:
                car_result = await db.execute(
                    select(Car).where(Car.id == booking.car_id).with_for_update()
                    .execution_options(populate_existing=True)
                )
                car = car_result.scalar_one()
            
            # 6. Status write guarded by the from-state
            values = {"lead_status": target}
            values.update(_side_effect_values(target, actor.get("user_id"), now, note))
            write = await db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.lead_status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if write.rowcount != 1:
                # Someone else moved the booking after we read it
                raise InvalidTransitionError(current.value, target.value)
            await db.refresh(booking)
            
            # 7. Commission
            commission = None
            if target == LeadStatus.COMPLETED:
                partner = await db.get(Partner, booking.partner_id)
                commission = await CommissionLedger.append(db, booking, partner)
                await log_event(
                    db,
                    action=AuditAction.COMMISSION_LOGGED,
                    actor=actor,
                    entity_type="commission_log",
                    entity_id=commission.id,
                    metadata={"booking_id": booking.id, "amount": str(commission.commission_amount)}
                )
            
            # 8. Car release
            car_released = False
            if car is not None:
                car_released = await LeadStateMachine._release_car_if_idle(db, car, booking, actor)
            
            # 9. Audit + commit
            await log_event(
                db,
                action=AuditAction.for_lead_status(target),
                actor=actor,
                entity_type="booking",
                entity_id=booking.id,
                metadata={
                    "from": current.value,
                    "to": target.value,
                    "note": note,
                    "car_released": car_released,
                }
            )
            await db.commit()
        except AppException as exc:
            await db.rollback()
            logger.info("Transition of booking %s to %s rejected: %s", booking_id, target.value, exc.error_code)
            raise
        except Exception:
            await db.rollback()
            raise
        
        logger.info("Booking %s moved %s -> %s", booking_id, current.value, target.value)
        return booking
    
    @staticmethod
    async def _release_car_if_idle(
        db: AsyncSession,
        car: Car,
        booking: Booking,
        actor: Dict[str, Any]
    ) -> bool:
        """
        Flip a RENTED car back to AVAILABLE when no other booking is open on it.
        
        Runs under the car row lock taken by the caller. MAINTENANCE is a
        partner decision and is left alone.
        """
        if car.rental_status != RentalStatus.RENTED:
            return False
        
        if await count_open_bookings(db, car.id, exclude_booking_id=booking.id) > 0:
            return False
        
        car.rental_status = RentalStatus.AVAILABLE
        await db.flush()
        await log_event(
            db,
            action=AuditAction.CAR_AUTO_RELEASED,
            actor=actor,
            entity_type="car",
            entity_id=car.id,
            metadata={"booking_id": booking.id}
        )
        logger.info("Car %s released to AVAILABLE after booking %s closed", car.id, booking.id)
        return True
