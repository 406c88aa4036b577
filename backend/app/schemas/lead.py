"""
Lead (partner-side booking) schemas.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from backend.app.core.clock import to_naive_utc
from backend.app.models.lead_enums import LeadStatus
from backend.app.models.car_enums import RentalStatus
from backend.app.schemas.booking import strip_required


class LeadTransitionRequest(BaseModel):
    """Schema for driving a booking to its next status."""
    status: LeadStatus
    note: Optional[str] = Field(default=None, max_length=2000)


class LeadSummary(BaseModel):
    """Partner lead list item."""
    id: int
    booking_number: str
    car_id: int
    customer_name: str
    customer_phone: str
    customer_email: str
    pickup_datetime: datetime
    return_datetime: datetime
    pickup_location: str
    return_location: str
    customer_note: Optional[str]
    total_price: Decimal
    status: LeadStatus
    is_blacklisted: bool


class LeadListResponse(BaseModel):
    leads: List[LeadSummary]
    total: int


class CarRentalStatusUpdate(BaseModel):
    """Partner's manual rental status change."""
    rental_status: RentalStatus


class CarRentalStatusResponse(BaseModel):
    car_id: int
    rental_status: RentalStatus
    updated_at: datetime


class LeadEditRequest(BaseModel):
    """
    Partner correction of a lead before pickup.

    Only the fields sent are changed. The return time may only move
    later; the price is always recomputed by the server.
    """
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(default=None, min_length=1, max_length=50)
    customer_email: Optional[EmailStr] = None
    customer_note: Optional[str] = None
    pickup_datetime: Optional[datetime] = None
    return_datetime: Optional[datetime] = None
    pickup_location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    return_location: Optional[str] = Field(default=None, max_length=255)

    @field_validator("customer_name", "customer_phone", "pickup_location")
    @classmethod
    def reject_blank(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else strip_required(value)

    @field_validator("pickup_datetime", "return_datetime")
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else to_naive_utc(value)


class LeadHistoryEntry(BaseModel):
    action: str
    actor_id: Optional[int]
    actor_role: Optional[str]
    metadata: Optional[Dict[str, Any]]
    timestamp: datetime


class LeadHistoryResponse(BaseModel):
    booking_id: int
    entries: List[LeadHistoryEntry]
