"""
Commission Log database model.

Append-only record of commission owed per completed booking.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import CommissionStatus


class CommissionLog(Base):
    """
    Commission Log model.
    
    Written exactly once when a booking reaches COMPLETED; the unique
    booking_id makes a second write fail at the database.
    NO updates or deletions from the booking core. Payout tooling flips
    status to PAID out of band.
    """
    __tablename__ = "commission_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Linkage
    partner_id = Column(Integer, ForeignKey('partners.id'), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, unique=True, index=True)
    
    # Financials (rate snapshotted from partner at completion time)
    booking_amount = Column(Numeric(12, 2), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    
    status = Column(Enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True)
    paid_at = Column(DateTime, nullable=True)
    
    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<CommissionLog(id={self.id}, booking_id={self.booking_id}, amount={self.commission_amount})>"
