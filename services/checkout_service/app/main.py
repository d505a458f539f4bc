"""FastAPI application for the PEPS Checkout Service."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.checkout_service.dependencies import CheckoutServices, build_services
from services.checkout_service.routers import (
    auth_router,
    checkout_router,
    payments_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is None:
        build_services().install(app)
    yield


def create_app(services: Optional[CheckoutServices] = None) -> FastAPI:
    """Create and configure the Checkout Service FastAPI app.

    ``services`` lets callers supply pre-built collaborators; otherwise they
    are built from settings at startup.
    """
    settings = get_settings()
    app = FastAPI(
        title="PEPS Checkout Service",
        version="0.1.0",
        description="Order settlement, PEPS redemption and Paystack payments.",
        lifespan=lifespan,
    )
    app.state.services = None
    if services is not None:
        services.install(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Liveness endpoint."""
        return {"status": "ok", "service": "checkout"}

    @app.get("/health/dependencies", tags=["system"])
    async def dependency_health() -> dict:
        """Probe auth and database through the health prober."""
        report = await app.state.services.health.check()
        return {
            "healthy": report.healthy,
            "latency_ms": report.latency_ms,
            "error": report.error,
            "services": report.services,
        }

    app.include_router(auth_router)
    app.include_router(checkout_router)
    app.include_router(payments_router)

    return app


app = create_app()
