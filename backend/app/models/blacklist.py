"""
Blacklist database model.

Customers refused by the platform, matched by phone or name.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class BlacklistEntry(Base):
    """Blacklisted customer identity."""
    __tablename__ = "blacklist"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    document_number = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    reason = Column(Text, nullable=False)
    added_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<BlacklistEntry(id={self.id}, full_name='{self.full_name}')>"
