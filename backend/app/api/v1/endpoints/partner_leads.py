"""
Partner API Endpoints.

Lead list and pre-pickup lead edits for partner staff, and manual car
rental status changes.
Lead transitions go through PATCH /bookings/{id}/status.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role, PartnerScopeGuard
from backend.app.db.session import get_db
from backend.app.domain.booking.lead_editor import LeadEditor
from backend.app.models.booking import Booking
from backend.app.models.car import Car
from backend.app.models.enums import UserRole
from backend.app.models.lead_enums import LeadStatus
from backend.app.schemas.booking import BookingResponse
from backend.app.schemas.lead import (
    LeadSummary, LeadListResponse, LeadEditRequest, LeadHistoryEntry, LeadHistoryResponse,
    CarRentalStatusUpdate, CarRentalStatusResponse
)
from backend.app.services.audit import log_event, get_audit_trail, AuditAction
from backend.app.services.blacklist import load_blacklist_keys, matches_blacklist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/partner", tags=["Partner - Leads"])

partner_guard = PartnerScopeGuard()
partner_roles = [UserRole.PARTNER_ADMIN, UserRole.PLATFORM_OWNER]


@router.get("/leads", response_model=LeadListResponse)
async def list_leads(
    status_filter: Optional[LeadStatus] = Query(None, alias="status"),
    partner_id: Optional[int] = Query(None, description="Admins only: partner to list"),
    current_user: dict = Depends(require_role(partner_roles)),
    db: AsyncSession = Depends(get_db)
):
    """
    List the partner's bookings, newest first, with blacklist flags.
    """
    scope = partner_guard.filter_by_partner(current_user)
    if scope is None:
        scope = partner_id
    
    query = select(Booking)
    if scope is not None:
        query = query.where(Booking.partner_id == scope)
    if status_filter:
        query = query.where(Booking.lead_status == status_filter)
    
    result = await db.execute(query.order_by(desc(Booking.created_at), desc(Booking.id)))
    bookings = result.scalars().all()
    keys = await load_blacklist_keys(db)
    
    leads = [
        LeadSummary(
            id=b.id,
            booking_number=b.booking_number,
            car_id=b.car_id,
            customer_name=b.customer_name,
            customer_phone=b.customer_phone,
            customer_email=b.customer_email,
            pickup_datetime=b.pickup_datetime,
            return_datetime=b.return_datetime,
            pickup_location=b.pickup_location,
            return_location=b.return_location,
            customer_note=b.customer_note,
            total_price=b.total_price,
            status=b.lead_status,
            is_blacklisted=matches_blacklist(b.customer_phone, b.customer_name, keys)
        )
        for b in bookings
    ]
    return LeadListResponse(leads=leads, total=len(leads))


@router.patch("/leads/{booking_id}", response_model=BookingResponse)
async def edit_lead(
    body: LeadEditRequest,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role(partner_roles)),
    db: AsyncSession = Depends(get_db)
):
    """
    Correct customer details, locations or dates of a NEW or CLAIMED lead.
    """
    booking = await LeadEditor.edit(db, booking_id, current_user, body)
    return BookingResponse.model_validate(booking)


@router.get("/leads/{booking_id}/history", response_model=LeadHistoryResponse)
async def lead_history(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role(partner_roles)),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail of a lead, most recent first."""
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise ResourceNotFoundError("Booking", booking_id)
    partner_guard.enforce(booking.partner_id, current_user, "booking")
    
    entries = await get_audit_trail(db, entity_type="booking", entity_id=booking.id)
    return LeadHistoryResponse(
        booking_id=booking.id,
        entries=[
            LeadHistoryEntry(
                action=e.action,
                actor_id=e.actor_id,
                actor_role=e.actor_role,
                metadata=e.meta_data,
                timestamp=e.timestamp,
            )
            for e in entries
        ]
    )


@router.patch("/cars/{car_id}/rental-status", response_model=CarRentalStatusResponse)
async def update_car_rental_status(
    body: CarRentalStatusUpdate,
    car_id: int = Path(..., description="Car ID"),
    current_user: dict = Depends(require_role(partner_roles)),
    db: AsyncSession = Depends(get_db)
):
    """
    Manually mark a car AVAILABLE, RENTED or MAINTENANCE.
    """
    result = await db.execute(select(Car).where(Car.id == car_id).with_for_update())
    car = result.scalar_one_or_none()
    if not car:
        raise ResourceNotFoundError("Car", car_id)
    partner_guard.enforce(car.partner_id, current_user, "car")
    
    previous = car.rental_status
    car.rental_status = body.rental_status
    car.updated_at = utcnow()
    await log_event(
        db,
        action=AuditAction.CAR_RENTAL_STATUS_CHANGED,
        actor=current_user,
        entity_type="car",
        entity_id=car.id,
        metadata={"from": previous.value, "to": body.rental_status.value}
    )
    await db.commit()
    
    logger.info("Car %s rental status %s -> %s", car.id, previous.value, body.rental_status.value)
    return CarRentalStatusResponse(
        car_id=car.id,
        rental_status=car.rental_status,
        updated_at=car.updated_at
    )
