"""
Lead state machine tests.

Validates the transition table, who may move a booking, and the side
effects of closing one.
"""

import itertools
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import select

from backend.app.core.exceptions import (
    InsufficientPermissionsError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.booking.lead_state_machine import (
    LEAD_TRANSITIONS, LeadStateMachine, allowed_targets
)
from backend.app.models.booking import Booking
from backend.app.models.car import Car
from backend.app.models.car_enums import RentalStatus
from backend.app.models.commission_log import CommissionLog
from backend.app.models.billing_enums import CommissionStatus
from backend.app.models.lead_enums import LeadStatus
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from backend.app.services.audit import get_audit_trail, AuditAction

NOW = datetime(2027, 1, 12, 9, 0)
_numbers = itertools.count(1)


async def add_booking(db, car_id, partner_id, status=LeadStatus.NEW, user_id=None, days=(10, 13)):
    booking = Booking(
        booking_number=f"JR-20270101-{next(_numbers):06X}",
        car_id=car_id,
        partner_id=partner_id,
        user_id=user_id,
        customer_name="Choi Yuna",
        customer_phone="010-2222-3333",
        pickup_datetime=datetime(2027, 1, days[0], 10),
        return_datetime=datetime(2027, 1, days[1], 10),
        total_price=Decimal("3000"),
        lead_status=status,
    )
    db.add(booking)
    await db.commit()
    return booking.id


async def car_rental_status(db, car_id):
    result = await db.execute(select(Car.rental_status).where(Car.id == car_id))
    return result.scalar_one()


def test_transition_table_shape():
    assert allowed_targets(LeadStatus.NEW) == {LeadStatus.CLAIMED, LeadStatus.CANCELLED}
    assert allowed_targets(LeadStatus.ACTIVE) == {LeadStatus.RETURN}
    assert allowed_targets(LeadStatus.COMPLETED) == set()
    assert allowed_targets(LeadStatus.CANCELLED) == set()
    assert set(LEAD_TRANSITIONS) == set(LeadStatus)


@pytest.mark.asyncio
@pytest.mark.parametrize("current, target", list(itertools.product(LeadStatus, LeadStatus)))
async def test_every_pair_follows_table(db_session, car_id, partner, partner_identity, current, target):
    booking_id = await add_booking(db_session, car_id, partner.id, status=current)
    
    if target in LEAD_TRANSITIONS[current]:
        booking = await LeadStateMachine.transition(
            db_session, booking_id, partner_identity, target, note="Customer called to cancel", now=NOW
        )
        assert booking.lead_status == target
    else:
        with pytest.raises(InvalidTransitionError):
            await LeadStateMachine.transition(
                db_session, booking_id, partner_identity, target, note="Customer called to cancel", now=NOW
            )
        result = await db_session.execute(select(Booking.lead_status).where(Booking.id == booking_id))
        assert result.scalar_one() == current


@pytest.mark.asyncio
async def test_full_lifecycle_stamps_actor(db_session, car_id, partner, partner_admin, partner_identity):
    booking_id = await add_booking(db_session, car_id, partner.id)
    
    booking = await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.CLAIMED, now=NOW)
    assert booking.claimed_by_id == partner_admin.id
    assert booking.claimed_at == NOW
    
    booking = await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.PICKUP, now=NOW)
    assert booking.pickup_confirmed_by_id == partner_admin.id
    
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.ACTIVE, now=NOW)
    booking = await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.RETURN, now=NOW)
    assert booking.return_confirmed_by_id == partner_admin.id
    
    booking = await LeadStateMachine.transition(
        db_session, booking_id, partner_identity, LeadStatus.COMPLETED, now=NOW + timedelta(days=2)
    )
    assert booking.completed_at == NOW + timedelta(days=2)
    
    trail = await get_audit_trail(db_session, entity_type="booking", entity_id=booking_id)
    assert {entry.action for entry in trail} == {
        AuditAction.LEAD_CLAIMED,
        AuditAction.LEAD_PICKUP,
        AuditAction.LEAD_ACTIVE,
        AuditAction.LEAD_RETURN,
        AuditAction.LEAD_COMPLETED,
    }


@pytest.mark.asyncio
async def test_completion_logs_commission_once(db_session, car_id, partner, partner_identity):
    booking_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.RETURN)
    
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.COMPLETED, now=NOW)
    
    result = await db_session.execute(select(CommissionLog).where(CommissionLog.booking_id == booking_id))
    logs = result.scalars().all()
    assert len(logs) == 1
    assert logs[0].commission_amount == Decimal("300.00")
    assert logs[0].commission_rate == Decimal("10.00")
    assert logs[0].status == CommissionStatus.PENDING
    
    # Completed is terminal, a replay cannot log again
    with pytest.raises(InvalidTransitionError):
        await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.COMPLETED, now=NOW)
    result = await db_session.execute(select(CommissionLog.id).where(CommissionLog.booking_id == booking_id))
    assert len(result.all()) == 1


@pytest.mark.asyncio
async def test_cancellation_does_not_log_commission(db_session, car_id, partner, partner_identity):
    booking_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.PICKUP)
    
    booking = await LeadStateMachine.transition(
        db_session, booking_id, partner_identity, LeadStatus.CANCELLED, note="No show", now=NOW
    )
    assert booking.cancellation_reason == "No show"
    assert booking.cancelled_at == NOW
    
    result = await db_session.execute(select(CommissionLog.id))
    assert result.all() == []


@pytest.mark.asyncio
async def test_partner_cancellation_requires_note(db_session, car_id, partner, partner_identity):
    booking_id = await add_booking(db_session, car_id, partner.id)
    
    with pytest.raises(ValidationFailedError):
        await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.CANCELLED, note="  ", now=NOW)


@pytest.mark.asyncio
async def test_customer_may_cancel_own_booking_early(db_session, car_id, partner, customer, customer_identity):
    new_id = await add_booking(db_session, car_id, partner.id, user_id=customer.id)
    claimed_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.CLAIMED, user_id=customer.id, days=(20, 22))
    
    booking = await LeadStateMachine.transition(db_session, new_id, customer_identity, LeadStatus.CANCELLED, now=NOW)
    assert booking.lead_status == LeadStatus.CANCELLED
    assert booking.cancelled_by_id == customer.id
    
    booking = await LeadStateMachine.transition(db_session, claimed_id, customer_identity, LeadStatus.CANCELLED, now=NOW)
    assert booking.lead_status == LeadStatus.CANCELLED


@pytest.mark.asyncio
async def test_customer_limits(db_session, car_id, partner, customer, customer_identity):
    picked_up_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.PICKUP, user_id=customer.id)
    new_id = await add_booking(db_session, car_id, partner.id, user_id=customer.id, days=(20, 22))
    
    with pytest.raises(InsufficientPermissionsError):
        await LeadStateMachine.transition(db_session, picked_up_id, customer_identity, LeadStatus.CANCELLED, now=NOW)
    with pytest.raises(InsufficientPermissionsError):
        await LeadStateMachine.transition(db_session, new_id, customer_identity, LeadStatus.CLAIMED, now=NOW)


@pytest.mark.asyncio
async def test_strangers_are_forbidden(db_session, car_id, partner, other_partner, customer):
    booking_id = await add_booking(db_session, car_id, partner.id)
    
    other_staff = User(email="staff@seogwipo.test", username="seogwipo_staff", role=UserRole.PARTNER_ADMIN)
    db_session.add(other_staff)
    await db_session.commit()
    other_staff_identity = {"user_id": other_staff.id, "role": "PARTNER_ADMIN", "partner_id": other_partner.id}
    stranger_identity = {"user_id": customer.id, "role": "CUSTOMER", "partner_id": None}
    
    for actor in (other_staff_identity, stranger_identity):
        with pytest.raises(InsufficientPermissionsError):
            await LeadStateMachine.transition(db_session, booking_id, actor, LeadStatus.CLAIMED, now=NOW)


@pytest.mark.asyncio
async def test_platform_owner_can_drive_any_booking(db_session, car_id, partner, admin_identity):
    booking_id = await add_booking(db_session, car_id, partner.id)
    
    booking = await LeadStateMachine.transition(db_session, booking_id, admin_identity, LeadStatus.CLAIMED, now=NOW)
    assert booking.lead_status == LeadStatus.CLAIMED


@pytest.mark.asyncio
async def test_unknown_booking(db_session, partner_identity):
    with pytest.raises(ResourceNotFoundError):
        await LeadStateMachine.transition(db_session, 999, partner_identity, LeadStatus.CLAIMED, now=NOW)


@pytest.mark.asyncio
async def test_stale_second_claim_is_rejected(db_session, car_id, partner, partner_identity, admin_identity):
    booking_id = await add_booking(db_session, car_id, partner.id)
    
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.CLAIMED, now=NOW)
    with pytest.raises(InvalidTransitionError):
        await LeadStateMachine.transition(db_session, booking_id, admin_identity, LeadStatus.CLAIMED, now=NOW)


# ---------------------------------------------------------------------------
# Car auto-release
# ---------------------------------------------------------------------------

async def set_rental_status(db, car, status):
    car.rental_status = status
    await db.commit()


@pytest.mark.asyncio
async def test_closing_last_booking_releases_rented_car(db_session, car, car_id, partner, partner_identity):
    await set_rental_status(db_session, car, RentalStatus.RENTED)
    booking_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.RETURN)
    
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.COMPLETED, now=NOW)
    
    assert await car_rental_status(db_session, car_id) == RentalStatus.AVAILABLE
    trail = await get_audit_trail(db_session, entity_type="car", entity_id=car_id)
    assert [entry.action for entry in trail] == [AuditAction.CAR_AUTO_RELEASED]


@pytest.mark.asyncio
async def test_car_stays_rented_while_other_booking_open(db_session, car, car_id, partner, partner_identity):
    await set_rental_status(db_session, car, RentalStatus.RENTED)
    booking_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.ACTIVE)
    await add_booking(db_session, car_id, partner.id, status=LeadStatus.CLAIMED, days=(20, 22))
    
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.RETURN, now=NOW)
    await LeadStateMachine.transition(db_session, booking_id, partner_identity, LeadStatus.COMPLETED, now=NOW)
    
    assert await car_rental_status(db_session, car_id) == RentalStatus.RENTED


@pytest.mark.asyncio
async def test_maintenance_is_left_alone(db_session, car, car_id, partner, partner_identity):
    await set_rental_status(db_session, car, RentalStatus.MAINTENANCE)
    booking_id = await add_booking(db_session, car_id, partner.id, status=LeadStatus.CLAIMED)
    
    await LeadStateMachine.transition(
        db_session, booking_id, partner_identity, LeadStatus.CANCELLED, note="Car failed inspection", now=NOW
    )
    
    assert await car_rental_status(db_session, car_id) == RentalStatus.MAINTENANCE
