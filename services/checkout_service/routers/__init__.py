"""Checkout Service routers package."""

from services.checkout_service.routers.auth import router as auth_router
from services.checkout_service.routers.checkout import router as checkout_router
from services.checkout_service.routers.payments import router as payments_router

__all__ = [
    "auth_router",
    "checkout_router",
    "payments_router",
]
