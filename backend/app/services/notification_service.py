"""
Notification Service.

Creates in-app notifications for booking events. Dispatch is best
effort: it runs after the booking has committed, behind a circuit
breaker, and its failures are logged, never raised to the caller.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, Dict, Any

from backend.app.core.reliability import CircuitOpenError, notification_circuit_breaker
from backend.app.models.booking import Booking
from backend.app.models.notification import Notification, NotificationType
from backend.app.models.partner import PartnerMember

logger = logging.getLogger(__name__)


class NotificationService:
    
    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        booking_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            booking_id=booking_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush() # Caller commits usually
        return notif

    @staticmethod
    async def notify_partner_new_booking(db: AsyncSession, booking: Booking) -> int:
        """Notify every member of the booking's partner about a new lead."""
        result = await db.execute(
            select(PartnerMember.user_id).where(PartnerMember.partner_id == booking.partner_id)
        )
        member_ids = result.scalars().all()
        
        notifications = [
            Notification(
                user_id=uid,
                booking_id=booking.id,
                type=NotificationType.BOOKING_CREATED,
                title=f"New booking {booking.booking_number}",
                message=(
                    f"{booking.customer_name} ({booking.customer_phone}) booked car {booking.car_id} "
                    f"from {booking.pickup_datetime:%d/%m/%Y %H:%M} to {booking.return_datetime:%d/%m/%Y %H:%M}"
                ),
                metadata_payload={"booking_number": booking.booking_number}
            )
            for uid in member_ids
        ]
        
        if notifications:
            db.add_all(notifications)
        await db.commit()
        return len(notifications)

    @staticmethod
    async def notify_customer_lead_update(db: AsyncSession, booking: Booking) -> int:
        """Tell a registered customer their booking changed status."""
        if booking.user_id is None:
            return 0
        await NotificationService.create_notification(
            db,
            user_id=booking.user_id,
            title=f"Booking {booking.booking_number} is now {booking.lead_status.value}",
            message=booking.cancellation_reason or f"Your booking status changed to {booking.lead_status.value}",
            type=NotificationType.LEAD_UPDATE,
            booking_id=booking.id,
            metadata={"status": booking.lead_status.value}
        )
        await db.commit()
        return 1


async def dispatch(notify, db: AsyncSession, booking: Booking) -> bool:
    """
    Fire a notification without letting it affect the booking.
    
    Returns:
        True if delivered, False if skipped or failed
    """
    booking_id = booking.id
    try:
        await notification_circuit_breaker.call(notify, db, booking)
        return True
    except CircuitOpenError:
        logger.warning("Notification circuit open, skipped %s for booking %s", notify.__name__, booking_id)
    except Exception:
        await db.rollback()
        logger.exception("Notification %s failed for booking %s", notify.__name__, booking_id)
    return False
