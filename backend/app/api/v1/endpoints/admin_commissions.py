"""
Admin Commission API Endpoints.

Read-only view of the commission ledger. Payout status is maintained by
external tooling.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.guards import require_role
from backend.app.db.session import get_db
from backend.app.domain.billing.commission_ledger import CommissionLedger
from backend.app.models.billing_enums import CommissionStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.commission import (
    CommissionLogResponse, CommissionListResponse, CommissionSummary
)

router = APIRouter(prefix="/admin", tags=["Admin - Commissions"])


@router.get("/commissions", response_model=CommissionListResponse)
async def list_commissions(
    status_filter: Optional[CommissionStatus] = Query(None, alias="status"),
    partner_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_role([UserRole.PLATFORM_OWNER])),
    db: AsyncSession = Depends(get_db)
):
    """
    List commission rows with a total for the same filter.
    """
    entries, total, count = await CommissionLedger.list_entries(db, status_filter, partner_id)
    return CommissionListResponse(
        commissions=[CommissionLogResponse.model_validate(e) for e in entries],
        summary=CommissionSummary(total=total, count=count)
    )
