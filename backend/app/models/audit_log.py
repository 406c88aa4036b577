"""
Audit Log Database Model.

Tracks booking-core decisions (bookings created, lead transitions) in the
same transaction as the change they describe.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.
    
    Events logged:
    - BOOKING_CREATED
    - LEAD_CLAIMED / LEAD_PICKUP / LEAD_ACTIVE / LEAD_RETURN
    - LEAD_COMPLETED / LEAD_CANCELLED
    - COMMISSION_LOGGED
    - CAR_AUTO_RELEASED / CAR_RENTAL_STATUS_CHANGED
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for guests and system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_role = Column(String(50), nullable=True)
    
    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    
    # What it was performed on
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)
    
    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    
    # Timestamp
    timestamp = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
