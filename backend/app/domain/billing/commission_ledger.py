"""
Commission Ledger (Domain Logic).

Append-only record of commission owed by a partner per completed booking.
Written only by the COMPLETED lead transition, inside its transaction.
Must be idempotent: at most one row per booking.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

from backend.app.models.billing_enums import CommissionStatus
from backend.app.models.booking import Booking
from backend.app.models.commission_log import CommissionLog
from backend.app.models.lead_enums import LeadStatus
from backend.app.models.partner import Partner

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class CommissionLedger:
    
    @staticmethod
    def compute_commission(booking_amount, commission_rate) -> Decimal:
        """booking_amount x commission_rate / 100, rounded to cents."""
        amount = Decimal(str(booking_amount)) * Decimal(str(commission_rate)) / Decimal(100)
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    
    @staticmethod
    async def append(db: AsyncSession, booking: Booking, partner: Partner) -> CommissionLog:
        """
        Append the commission row for a completed booking.
        
        Flow:
        1. Validate booking state (COMPLETED)
        2. Idempotency check (existing row for booking)
        3. Snapshot partner rate, compute amount
        4. Insert (flush only, caller commits)
        
        Args:
            db: Database session (transaction managed by caller)
            booking: Booking being completed
            partner: Owning partner, source of the current rate
            
        Returns:
            CommissionLog row for the booking
        """
        # 1. State
        if booking.lead_status != LeadStatus.COMPLETED:
            raise ValueError(
                f"Booking {booking.id} is not COMPLETED. Current status: {booking.lead_status}"
            )
        
        # 2. Idempotency
        result = await db.execute(
            select(CommissionLog).where(CommissionLog.booking_id == booking.id)
        )
        existing = result.scalar_one_or_none()
        if existing:
            logger.warning("Commission for booking %s already logged as %s", booking.id, existing.id)
            return existing
        
        # 3. Calculate
        booking_amount = Decimal(str(booking.total_price))
        commission_rate = Decimal(str(partner.commission_rate))
        commission_amount = CommissionLedger.compute_commission(booking_amount, commission_rate)
        
        # 4. Persist; unique booking_id backs up the check above
        log = CommissionLog(
            partner_id=partner.id,
            booking_id=booking.id,
            booking_amount=booking_amount,
            commission_rate=commission_rate,
            commission_amount=commission_amount,
            status=CommissionStatus.PENDING
        )
        db.add(log)
        await db.flush()
        
        logger.info(
            "Commission %s logged for booking %s (partner %s, %s%% of %s)",
            commission_amount, booking.id, partner.id, commission_rate, booking_amount
        )
        return log
    
    @staticmethod
    async def list_entries(
        db: AsyncSession,
        status: Optional[CommissionStatus] = None,
        partner_id: Optional[int] = None
    ) -> tuple[list[CommissionLog], Decimal, int]:
        """Commission rows newest first, with total amount and count for the same filter."""
        filters = []
        if status:
            filters.append(CommissionLog.status == status)
        if partner_id:
            filters.append(CommissionLog.partner_id == partner_id)
        
        result = await db.execute(
            select(CommissionLog).where(*filters).order_by(desc(CommissionLog.created_at), desc(CommissionLog.id))
        )
        entries = result.scalars().all()
        
        summary = await db.execute(
            select(func.coalesce(func.sum(CommissionLog.commission_amount), 0), func.count(CommissionLog.id))
            .where(*filters)
        )
        total, count = summary.one()
        return entries, Decimal(str(total)).quantize(CENTS), count
