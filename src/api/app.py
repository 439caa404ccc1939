"""
FastAPI application factory.

* Builds the process-wide components (location store, broadcaster, audit
  logger, WebSocket hub) and keeps them on ``app.state``.
* Starts / stops the background workers via lifespan events.
* Maps lifecycle errors to HTTP responses.
* Applies rate-limiting and request-logging middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import RequestLoggingMiddleware, limiter
from src.api.routes import admin, bookings, driver, drivers, locations, realtime
from src.config import settings
from src.domain.exceptions import (
    BookingAccessDenied,
    BookingNotAssignable,
    BookingNotCancellable,
    BookingNotFound,
    DriverNotFound,
    DriverNotLinked,
    InactiveRide,
    InvalidStateTransition,
    LocationRateLimited,
    NotAssignedDriver,
    RideLifecycleError,
    RideNotFound,
)
from src.infrastructure.database import dispose_engine
from src.infrastructure.redis_client import close_redis, get_redis
from src.realtime.hub import ConnectionManager
from src.realtime.redis_transport import RedisTransport
from src.services.audit import AuditLogger
from src.services.broadcaster import EventBroadcaster
from src.services.location_store import LocationStore
from src.workers import audit_writer as _audit_writer
from src.workers import location_sweeper as _location_sweeper
from src.workers import realtime_relay as _realtime_relay

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[RideLifecycleError], int] = {
    RideNotFound: 404,
    BookingNotFound: 404,
    DriverNotFound: 404,
    NotAssignedDriver: 403,
    BookingAccessDenied: 403,
    InvalidStateTransition: 400,
    InactiveRide: 400,
    BookingNotCancellable: 400,
    BookingNotAssignable: 400,
    DriverNotLinked: 400,
    LocationRateLimited: 429,
}


def _uses_redis() -> bool:
    return settings.realtime_backend == "redis"


def build_components(app: FastAPI) -> None:
    """Create the in-process singletons shared by every request."""
    connections = ConnectionManager()
    transport = RedisTransport(get_redis()) if _uses_redis() else connections
    broadcaster = EventBroadcaster(transport)
    store = LocationStore(
        min_update_interval=timedelta(
            seconds=settings.location_min_update_interval_seconds
        ),
        expiration=timedelta(seconds=settings.location_expiration_seconds),
        listener=broadcaster.on_location_updated,
    )
    app.state.connections = connections
    app.state.broadcaster = broadcaster
    app.state.location_store = store
    app.state.audit = AuditLogger(maxsize=settings.audit_queue_size)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background workers on startup; stop them on shutdown."""
    await _audit_writer.start_audit_writer(app.state.audit)
    await _location_sweeper.start_location_sweeper(app.state.location_store)
    if _uses_redis():
        await _realtime_relay.start_realtime_relay(get_redis(), app.state.connections)
    logger.info("Realtime backend: %s", settings.realtime_backend)
    yield
    if _uses_redis():
        await _realtime_relay.stop_realtime_relay()
    await _location_sweeper.stop_location_sweeper()
    await app.state.location_store.flush_notifications()
    await _audit_writer.stop_audit_writer(app.state.audit)
    if _uses_redis():
        await close_redis()
    await dispose_engine()


async def lifecycle_error_handler(request: Request, exc: RideLifecycleError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    headers = None
    if isinstance(exc, LocationRateLimited):
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse(
        status_code=status_code, content={"detail": exc.message}, headers=headers
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Limousine Dispatch Ride Lifecycle API",
        description=(
            "Drives each booking through the chauffeur ride lifecycle, "
            "keeps the latest driver GPS position per ride in memory, and "
            "pushes location and status events to passengers, drivers and "
            "dispatch dashboards in real time."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    build_components(app)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RideLifecycleError, lifecycle_error_handler)

    app.add_middleware(RequestLoggingMiddleware)

    # Routers
    app.include_router(driver.router)
    app.include_router(locations.router)
    app.include_router(bookings.router)
    app.include_router(drivers.router)
    app.include_router(admin.router)
    app.include_router(realtime.router)

    return app
