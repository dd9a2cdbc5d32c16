"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from reservations.api.v1 import auto_confirmation, reservations, webhooks

api_router = APIRouter()

# Reservations
api_router.include_router(reservations.router, prefix="/reservations", tags=["Reservations"])

# Auto-confirmation rules
api_router.include_router(
    auto_confirmation.router, prefix="/auto-confirmation", tags=["Auto-confirmation"]
)

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
