"""Version 1 API surface."""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    admin_commissions, bookings, car_lock, partner_leads
)

router = APIRouter()

for endpoint_module in (car_lock, bookings, partner_leads, admin_commissions):
    router.include_router(endpoint_module.router)
