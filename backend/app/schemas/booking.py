"""
Booking schemas.

Schemas for booking creation and booking detail.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from backend.app.core.clock import to_naive_utc
from backend.app.models.lead_enums import LeadStatus


def strip_required(value: str) -> str:
    """Trim surrounding whitespace; a blank value is a missing value."""
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class BookingCreate(BaseModel):
    """
    Schema for booking submission.
    
    total_price is the client's own calculation; the server recomputes
    the price and only uses this value to detect drift.
    """
    car_id: int = Field(..., gt=0)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: str = Field(..., min_length=1, max_length=50)
    customer_note: Optional[str] = None
    pickup_datetime: datetime
    return_datetime: datetime
    pickup_location: str = Field(default="", max_length=255)
    return_location: Optional[str] = Field(default=None, max_length=255)
    total_price: Decimal = Field(..., ge=0)
    user_id: Optional[int] = None
    session_id: Optional[str] = Field(default=None, description="Soft-lock session to release on success")
    
    @field_validator("customer_name", "customer_phone")
    @classmethod
    def reject_blank(cls, value: str) -> str:
        return strip_required(value)
    
    @field_validator("pickup_datetime", "return_datetime")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class BookingResponse(BaseModel):
    """Schema for booking response."""
    id: int
    booking_number: str
    car_id: int
    partner_id: int
    user_id: Optional[int]
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_note: Optional[str]
    pickup_datetime: datetime
    return_datetime: datetime
    pickup_location: str
    return_location: str
    reserved_until: Optional[datetime]
    total_price: Decimal
    lead_status: LeadStatus
    claimed_by_id: Optional[int] = None
    claimed_at: Optional[datetime] = None
    pickup_confirmed_by_id: Optional[int] = None
    pickup_confirmed_at: Optional[datetime] = None
    return_confirmed_by_id: Optional[int] = None
    return_confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_by_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    
    class Config:
        from_attributes = True


class BookingCreateResponse(BaseModel):
    """Response after booking creation."""
    booking: BookingResponse
    booking_number: str


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total: int
