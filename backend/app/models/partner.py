"""
Partner database models.

A partner is a rental company listing cars on the platform; members are
the users acting on its behalf.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import PartnerStatus, PartnerMemberRole


class Partner(Base):
    """
    Partner model.
    
    commission_rate is a percentage; it is snapshotted into the
    commission log when a booking completes.
    """
    __tablename__ = "partners"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    contact_email = Column(String(255), nullable=True)
    
    commission_rate = Column(Numeric(5, 2), nullable=False, default=10)
    status = Column(Enum(PartnerStatus), default=PartnerStatus.ACTIVE, nullable=False)
    
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Partner(id={self.id}, name='{self.name}', commission_rate={self.commission_rate})>"


class PartnerMember(Base):
    """Membership of a user in a partner's team."""
    __tablename__ = "partner_members"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    partner_id = Column(Integer, ForeignKey('partners.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    role = Column(Enum(PartnerMemberRole), default=PartnerMemberRole.STAFF, nullable=False)
    
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    
    __table_args__ = (
        UniqueConstraint('partner_id', 'user_id', name='uq_partner_members_partner_user'),
    )
    
    def __repr__(self):
        return f"<PartnerMember(partner_id={self.partner_id}, user_id={self.user_id}, role='{self.role.value}')>"
