"""
Car database model.

Carries the advisory soft-lock columns used while a customer fills in
the booking form.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.car_enums import ApprovalStatus, RentalStatus


class Car(Base):
    """
    Car model.
    
    Bookable only when approval_status is APPROVED and rental_status is
    AVAILABLE. locked_until / locked_by_session are a UX signal; double
    booking is prevented by the overlap check at creation time.
    """
    __tablename__ = "cars"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership - Car belongs to Partner
    partner_id = Column(Integer, ForeignKey('partners.id'), nullable=False, index=True)
    
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    
    price_per_day = Column(Numeric(12, 2), nullable=False)
    
    # Status
    approval_status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False, index=True)
    rental_status = Column(Enum(RentalStatus), default=RentalStatus.AVAILABLE, nullable=False, index=True)
    
    # Soft-lock
    locked_until = Column(DateTime, nullable=True)
    locked_by_session = Column(String(128), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    
    @property
    def is_bookable(self) -> bool:
        return (
            self.approval_status == ApprovalStatus.APPROVED
            and self.rental_status == RentalStatus.AVAILABLE
        )
    
    def __repr__(self):
        return f"<Car(id={self.id}, partner_id={self.partner_id}, rental_status='{self.rental_status.value}')>"
