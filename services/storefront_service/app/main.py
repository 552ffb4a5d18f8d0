"""FastAPI application for the Storefront Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.storefront_service.routers import checkout_router, zones_router


def create_app() -> FastAPI:
    """Create and configure the Storefront Service FastAPI app."""
    app = FastAPI(
        title="Storefront Service",
        version="0.1.0",
        description="Storefront checkout: payment verification, order creation, zone lookup.",
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "storefront"}

    app.include_router(zones_router, prefix="/store")
    app.include_router(checkout_router, prefix="/store")

    return app


app = create_app()
