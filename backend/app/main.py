"""
Car Rental Booking Core API.

Guests and customers book cars; partner staff claim and drive leads
through rental; the platform owner sees the commission ledger.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import close_redis, ping_redis
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Table registration on Base.metadata
from backend.app.models import (  # noqa: F401
    audit_log, blacklist, booking, car, commission_log, notification, partner, user
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        debug=settings.debug,
        description=__doc__,
        lifespan=lifespan,
    )
    application.add_middleware(ObservabilityMiddleware)

    application.add_exception_handler(AppException, app_exception_handler)
    application.add_exception_handler(HTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(Exception, generic_exception_handler)

    application.include_router(api_v1_router, prefix=f"/{settings.api_version}")
    return application


app = create_app()


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus Redis reachability. Redis being down only degrades rate limiting."""
    redis_up = await ping_redis()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if redis_up else "down",
    }
