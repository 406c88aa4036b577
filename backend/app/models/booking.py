"""
Booking database model.

Bookings are created once by the booking creator and afterwards only
mutated through lead status transitions. They are never deleted.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, ForeignKey, DateTime, Enum, CheckConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.lead_enums import LeadStatus


class Booking(Base):
    """
    Booking model.
    
    For a given car, bookings outside COMPLETED/CANCELLED never have
    overlapping [pickup_datetime, return_datetime) intervals.
    """
    __tablename__ = "bookings"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_number = Column(String(32), unique=True, index=True, nullable=False)
    
    # References (partner denormalized from car at creation)
    car_id = Column(Integer, ForeignKey('cars.id'), nullable=False, index=True)
    partner_id = Column(Integer, ForeignKey('partners.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)  # None for guests
    
    # Customer contact
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, default="")
    customer_phone = Column(String(50), nullable=False)
    customer_note = Column(Text, nullable=True)
    
    # Rental window
    pickup_datetime = Column(DateTime, nullable=False, index=True)
    return_datetime = Column(DateTime, nullable=False, index=True)
    pickup_location = Column(String(255), nullable=False, default="")
    return_location = Column(String(255), nullable=False, default="")
    reserved_until = Column(DateTime, nullable=True)
    
    # Server-computed price
    total_price = Column(Numeric(12, 2), nullable=False)
    
    # Lifecycle
    lead_status = Column(Enum(LeadStatus), default=LeadStatus.NEW, nullable=False, index=True)
    claimed_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    pickup_confirmed_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    pickup_confirmed_at = Column(DateTime, nullable=True)
    return_confirmed_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    return_confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __table_args__ = (
        CheckConstraint('pickup_datetime < return_datetime', name='ck_bookings_pickup_before_return'),
    )
    
    def __repr__(self):
        return f"<Booking(id={self.id}, number='{self.booking_number}', status='{self.lead_status.value}')>"
