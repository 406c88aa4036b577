"""
Notification model.

In-app messages about booking activity: new leads for partner staff,
status changes for registered customers.
"""

import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, JSON, Enum, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    BOOKING_CREATED = "BOOKING_CREATED"  # To partner members
    LEAD_UPDATE = "LEAD_UPDATE"  # To the booking's customer


class Notification(Base):
    __tablename__ = "notifications"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)
    
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, booking={self.booking_id}, type='{self.type.value}')>"
