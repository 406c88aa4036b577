"""
Commission ledger schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from backend.app.models.billing_enums import CommissionStatus


class CommissionLogResponse(BaseModel):
    """Schema for displaying a commission log row."""
    id: int
    partner_id: int
    booking_id: int
    booking_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: CommissionStatus
    paid_at: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True


class CommissionSummary(BaseModel):
    total: Decimal
    count: int


class CommissionListResponse(BaseModel):
    commissions: List[CommissionLogResponse]
    summary: CommissionSummary
