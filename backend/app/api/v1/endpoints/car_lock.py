"""
Car Soft-Lock API Endpoints.

Called by the booking form on page load, every ~30s as a heartbeat, and
on navigation away. Anonymous callers are allowed; the session id is
the only credential.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.rate_limit import rate_limit
from backend.app.db.session import get_db
from backend.app.schemas.car_lock import (
    CarLockRequest, CarLockResponse, CarUnlockResponse, CarLockStatusResponse
)
from backend.app.services.car_locking import (
    acquire_car_lock, release_car_lock, get_car_lock_status
)

router = APIRouter(prefix="/cars", tags=["Cars - Soft Lock"])


@router.post(
    "/{car_id}/lock",
    response_model=CarLockResponse,
    dependencies=[Depends(rate_limit("car_lock", settings.lock_rate_limit, settings.lock_rate_window_seconds))]
)
async def lock_car(
    body: CarLockRequest,
    car_id: int = Path(..., description="Car ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Acquire or refresh the soft-lock on a car.
    
    Returns 409 with remaining_minutes when another session holds it.
    """
    grant = await acquire_car_lock(db, car_id, body.session_id)
    return CarLockResponse(car_id=grant.car_id, locked_until=grant.locked_until)


@router.delete("/{car_id}/lock", response_model=CarUnlockResponse)
async def unlock_car(
    car_id: int = Path(..., description="Car ID"),
    session_id: str = Query(..., description="Session that holds the lock"),
    db: AsyncSession = Depends(get_db)
):
    """
    Release the soft-lock. Idempotent for double or late release.
    """
    await release_car_lock(db, car_id, session_id)
    return CarUnlockResponse(car_id=car_id)


@router.get("/{car_id}/lock", response_model=CarLockStatusResponse)
async def car_lock_status(
    car_id: int = Path(..., description="Car ID"),
    session_id: Optional[str] = Query(None, description="Caller's session, to tell own lock from others'"),
    db: AsyncSession = Depends(get_db)
):
    """
    Show whether the car is "in progress" for someone else.
    """
    lock = await get_car_lock_status(db, car_id, session_id)
    return CarLockStatusResponse(
        car_id=lock.car_id,
        locked=lock.locked,
        locked_by_other=lock.locked_by_other,
        locked_until=lock.locked_until,
        remaining_minutes=lock.remaining_minutes
    )
