"""
Audit logging service for booking-core decisions.

Entries are added to the caller's session and flushed, never committed
here, so an audit row exists iff the change it describes was committed.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    BOOKING_CREATED = "BOOKING_CREATED"
    
    # Lead transitions
    LEAD_CLAIMED = "LEAD_CLAIMED"
    LEAD_PICKUP = "LEAD_PICKUP"
    LEAD_ACTIVE = "LEAD_ACTIVE"
    LEAD_RETURN = "LEAD_RETURN"
    LEAD_COMPLETED = "LEAD_COMPLETED"
    LEAD_CANCELLED = "LEAD_CANCELLED"
    LEAD_EDITED = "LEAD_EDITED"
    
    # Side effects
    COMMISSION_LOGGED = "COMMISSION_LOGGED"
    CAR_AUTO_RELEASED = "CAR_AUTO_RELEASED"
    CAR_RENTAL_STATUS_CHANGED = "CAR_RENTAL_STATUS_CHANGED"
    
    @staticmethod
    def for_lead_status(status) -> str:
        return f"LEAD_{status.value}"


async def log_event(
    db: AsyncSession,
    action: str,
    actor: Optional[Dict[str, Any]] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an audit event in the current transaction.
    
    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor: Identity payload of the caller, None for guests/system
        entity_type: Kind of entity touched ("booking", "car", ...)
        entity_id: ID of the entity touched
        metadata: Additional context as JSON
        
    Returns:
        Flushed AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor.get("user_id") if actor else None,
        actor_role=actor.get("role") if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )
    
    db.add(audit_log)
    await db.flush()
    
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
    
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    
    if action:
        query = query.where(AuditLog.action == action)
    
    query = query.limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()
