"""
Commission ledger tests.
"""

import pytest
from datetime import datetime
from decimal import Decimal

from backend.app.domain.billing.commission_ledger import CommissionLedger
from backend.app.models.billing_enums import CommissionStatus
from backend.app.models.booking import Booking
from backend.app.models.commission_log import CommissionLog
from backend.app.models.lead_enums import LeadStatus


async def completed_booking(db, car_id, partner_id, number, amount="3000"):
    booking = Booking(
        booking_number=number,
        car_id=car_id,
        partner_id=partner_id,
        customer_name="Jung Hoseok",
        customer_phone="010-4444-5555",
        pickup_datetime=datetime(2027, 3, 1, 10),
        return_datetime=datetime(2027, 3, 4, 10),
        total_price=Decimal(amount),
        lead_status=LeadStatus.COMPLETED,
    )
    db.add(booking)
    await db.commit()
    return booking


@pytest.mark.parametrize("amount, rate, expected", [
    ("3000", "10", "300.00"),
    ("1234.56", "10", "123.46"),
    ("999.99", "12.5", "125.00"),
    ("0", "10", "0.00"),
])
def test_compute_commission(amount, rate, expected):
    assert CommissionLedger.compute_commission(Decimal(amount), Decimal(rate)) == Decimal(expected)


@pytest.mark.asyncio
async def test_append_snapshots_rate(db_session, car_id, partner):
    booking = await completed_booking(db_session, car_id, partner.id, "JR-20270301-000001")
    
    log = await CommissionLedger.append(db_session, booking, partner)
    await db_session.commit()
    
    assert log.booking_amount == Decimal("3000")
    assert log.commission_rate == Decimal("10.00")
    assert log.commission_amount == Decimal("300.00")
    assert log.status == CommissionStatus.PENDING
    
    # Later rate changes do not touch existing rows
    partner.commission_rate = Decimal("15.00")
    await db_session.commit()
    await db_session.refresh(log)
    assert log.commission_rate == Decimal("10.00")


@pytest.mark.asyncio
async def test_append_is_idempotent(db_session, car_id, partner):
    booking = await completed_booking(db_session, car_id, partner.id, "JR-20270301-000002")
    
    first = await CommissionLedger.append(db_session, booking, partner)
    second = await CommissionLedger.append(db_session, booking, partner)
    await db_session.commit()
    
    assert first.id == second.id


@pytest.mark.asyncio
async def test_append_requires_completed_booking(db_session, car_id, partner):
    booking = await completed_booking(db_session, car_id, partner.id, "JR-20270301-000003")
    booking.lead_status = LeadStatus.RETURN
    await db_session.commit()
    
    with pytest.raises(ValueError):
        await CommissionLedger.append(db_session, booking, partner)


@pytest.mark.asyncio
async def test_list_entries_filters_and_totals(db_session, car_id, partner, other_partner):
    a = await completed_booking(db_session, car_id, partner.id, "JR-20270301-000004", amount="3000")
    b = await completed_booking(db_session, car_id, partner.id, "JR-20270301-000005", amount="1000")
    c = await completed_booking(db_session, car_id, other_partner.id, "JR-20270301-000006", amount="2000")
    
    await CommissionLedger.append(db_session, a, partner)
    paid = await CommissionLedger.append(db_session, b, partner)
    await CommissionLedger.append(db_session, c, other_partner)
    paid.status = CommissionStatus.PAID
    await db_session.commit()
    
    entries, total, count = await CommissionLedger.list_entries(db_session)
    assert count == 3
    assert len(entries) == 3
    assert total == Decimal("650.00")
    
    entries, total, count = await CommissionLedger.list_entries(db_session, partner_id=partner.id)
    assert count == 2
    assert total == Decimal("400.00")
    
    entries, total, count = await CommissionLedger.list_entries(db_session, status=CommissionStatus.PENDING)
    assert count == 2
    assert {e.booking_id for e in entries} == {a.id, c.id}
    assert total == Decimal("550.00")


@pytest.mark.asyncio
async def test_list_entries_empty(db_session):
    entries, total, count = await CommissionLedger.list_entries(db_session)
    assert entries == []
    assert total == Decimal("0.00")
    assert count == 0
