"""
Estate Booking API - Main Application Entry Point

Listings and the booking lifecycle of a real-estate marketplace:
- Pending requests with an expiry window, confirmed/cancelled by the owner
- Compare-and-swap status updates so racing decisions cannot both win
- Listing availability mirrored from bookings in the same transaction
- Per-user rate limit on booking requests
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from estate_booking.core.config import get_settings
from estate_booking.core.exceptions import BookingError
from estate_booking.core.logging import setup_logging, get_logger
from estate_booking.core.metrics import metrics_endpoint
from estate_booking.api.router import api_router
from estate_booking.api.deps import build_booking_rate_limiter
from estate_booking.api.middleware import RequestLoggingMiddleware
from estate_booking.db.session import SessionLocal
from estate_booking.infrastructure import close_redis, connect_redis
from estate_booking.services.cache_service import ListingCache
from estate_booking.services.expiry_sweeper import ExpirySweeper
from estate_booking.services.notification_service import build_notifier

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: owns the Redis client, notifier and sweeper."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await connect_redis(settings)
    if redis_client is None:
        logger.warning("redis_unavailable", message="Running without cache and notifications")

    app.state.listing_cache = ListingCache(redis_client, settings.REDIS_CACHE_TTL)
    app.state.notifier = build_notifier(redis_client, settings.NOTIFICATION_CHANNEL_PREFIX)
    app.state.booking_rate_limiter = build_booking_rate_limiter(redis_client, settings)

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = ExpirySweeper(SessionLocal, app.state.notifier, settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    await app.state.notifier.close()
    await close_redis(redis_client)
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Real-estate listings with a concurrency-safe booking lifecycle",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code},
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for Docker and load balancers."""
    cache = getattr(request.app.state, "listing_cache", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await cache.stats() if cache else {"status": "disabled"},
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
