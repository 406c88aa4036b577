"""
Booking API Endpoints.

Booking submission (guests allowed), booking detail, customer history,
and status transitions for every actor.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_user, get_optional_user
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import verify_partner_access
from backend.app.core.rate_limit import rate_limit
from backend.app.db.session import get_db
from backend.app.domain.booking.booking_creator import BookingCreator
from backend.app.domain.booking.lead_state_machine import LeadStateMachine
from backend.app.models.booking import Booking
from backend.app.models.lead_enums import LeadStatus
from backend.app.schemas.booking import (
    BookingCreate, BookingResponse, BookingCreateResponse, BookingListResponse
)
from backend.app.schemas.lead import LeadTransitionRequest
from backend.app.services.notification_service import NotificationService, dispatch

router = APIRouter(tags=["Bookings"])


@router.post(
    "/bookings",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("booking_create", settings.booking_rate_limit, settings.booking_rate_window_seconds))]
)
async def create_booking(
    payload: BookingCreate,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a booking.
    
    Validates:
    - Return after pickup (400)
    - Car exists (404), approved and AVAILABLE (409)
    - No running reservation hold (409) and no overlapping booking (409)
    - Customer not blacklisted (403)
    - Client price within tolerance of server price (400)
    
    The stored price is always the server's.
    """
    booking = await BookingCreator.create(db, payload, caller=current_user)
    response = BookingCreateResponse(
        booking=BookingResponse.model_validate(booking),
        booking_number=booking.booking_number
    )
    
    # Best effort, the booking is already committed
    await dispatch(NotificationService.notify_partner_new_booking, db, booking)
    
    return response


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Booking detail for its customer, the owning partner, or an admin.
    """
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise ResourceNotFoundError("Booking", booking_id)
    
    is_own = booking.user_id is not None and booking.user_id == current_user.get("user_id")
    if not is_own and not verify_partner_access(booking.partner_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. You do not have permission to access this booking."
        )
    
    return booking


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
async def transition_booking(
    body: LeadTransitionRequest,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a booking through its lifecycle.
    
    Partner staff and admins drive NEW -> CLAIMED -> PICKUP -> ACTIVE ->
    RETURN -> COMPLETED; customers may cancel their own booking from NEW
    or CLAIMED. Completing logs commission; closing may release the car.
    """
    booking = await LeadStateMachine.transition(
        db,
        booking_id=booking_id,
        actor=current_user,
        target=body.status,
        note=body.note
    )
    
    response = BookingResponse.model_validate(booking)
    
    await dispatch(NotificationService.notify_customer_lead_update, db, booking)
    
    return response


@router.get("/customer/bookings", response_model=BookingListResponse)
async def list_my_bookings(
    status_filter: Optional[LeadStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    The caller's own bookings, newest first.
    """
    query = select(Booking).where(Booking.user_id == current_user["user_id"])
    if status_filter:
        query = query.where(Booking.lead_status == status_filter)
    
    result = await db.execute(query.order_by(desc(Booking.created_at), desc(Booking.id)))
    bookings = result.scalars().all()
    
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=len(bookings)
    )
