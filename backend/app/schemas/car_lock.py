"""
Car soft-lock schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CarLockRequest(BaseModel):
    """Schema for acquiring or refreshing a lock."""
    session_id: str = Field(..., min_length=1, max_length=128, description="Client-generated browsing session token")


class CarLockResponse(BaseModel):
    """Response after a lock is granted."""
    car_id: int
    locked: bool = True
    locked_by_other: bool = False
    locked_until: datetime
    message: str = "Lock acquired successfully"


class CarUnlockResponse(BaseModel):
    car_id: int
    unlocked: bool = True


class CarLockStatusResponse(BaseModel):
    car_id: int
    locked: bool
    locked_by_other: bool
    locked_until: Optional[datetime]
    remaining_minutes: int
