"""Storefront service routers package."""

from services.storefront_service.routers.checkout import router as checkout_router
from services.storefront_service.routers.zones import router as zones_router

__all__ = [
    "checkout_router",
    "zones_router",
]
