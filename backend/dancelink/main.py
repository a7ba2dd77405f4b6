"""
DanceLink Booking API - Main Application Entry Point

The booking and payment reconciliation core of the DanceLink studio platform:
- Payment sessions for Stripe Checkout and Wise transfers
- Idempotent webhook reconciliation onto bookings and seat counters
- Policy-driven cancellation and rescheduling
- Waitlist promotion when a seat frees up
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dancelink.api.errors import register_error_handlers
from dancelink.api.middleware import RequestLoggingMiddleware
from dancelink.api.router import api_router
from dancelink.core.config import get_settings
from dancelink.core.logging import get_logger, setup_logging
from dancelink.core.metrics import metrics_endpoint
from dancelink.db.session import dispose_engine
from dancelink.infrastructure.redis_client import close_redis, get_redis, get_redis_status
from dancelink.services.provider_factory import get_payment_providers

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    for name, provider in get_payment_providers().items():
        problems = provider.validate_config()
        if problems:
            logger.warning("payment_provider_unconfigured", provider=name.value, problems=problems)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Webhook dedupe falls back to the database ledger")

    yield

    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Booking lifecycle and payment reconciliation for dance classes and events",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await get_redis_status(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()
