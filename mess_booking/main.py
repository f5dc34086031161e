"""
Mess Token Booking API - Main Application Entry Point

A meal booking service built around a payment lifecycle engine:
- Bookings move pending -> paid or pending -> cancelled through atomic
  conditional updates, so concurrent cancels and payments cannot both win
- Stripe webhooks are verified and processed idempotently
- Paid bookings get a ticket id, QR code and PDF served as a static file
- Structured logging with request correlation, Prometheus metrics
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from mess_booking.core.config import get_settings
from mess_booking.core.logging import setup_logging, get_logger
from mess_booking.core.metrics import metrics_endpoint
from mess_booking.api.router import api_router
from mess_booking.api.middleware import RequestLoggingMiddleware
from mess_booking.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()

os.makedirs(settings.TICKETS_DIR, exist_ok=True)


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
        payments_enabled=settings.payments_enabled,
        tickets_dir=settings.TICKETS_DIR,
    )

    if not settings.payments_enabled:
        logger.warning(
            "payments_disabled",
            message="STRIPE_SECRET_KEY not set; bookings stay pending until confirmed by an admin",
        )
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("webhook_secret_missing", message="All webhook deliveries will be rejected")

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without statistics cache")

    yield

    # Cleanup
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Meal slot booking with payment confirmation and verifiable tickets",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors like any other booking validation."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


# Routes
app.include_router(api_router)

# Ticket PDFs: <TICKETS_URL_PREFIX>/<ticket_id>.pdf
app.mount(
    settings.TICKETS_URL_PREFIX,
    StaticFiles(directory=settings.TICKETS_DIR),
    name="tickets",
)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "payments_enabled": settings.payments_enabled,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
