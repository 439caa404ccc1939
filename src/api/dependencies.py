"""FastAPI dependency injection helpers."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infrastructure.database import async_session_factory
from src.services.audit import AuditLogger
from src.services.broadcaster import EventBroadcaster
from src.services.location_store import LocationStore
from src.services.ride_lifecycle import RideLifecycleService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for long-lived handlers (WebSockets) that open short sessions."""
    return async_session_factory


# Process-wide components are built once in ``create_app`` and kept on app.state.


def get_location_store(request: Request) -> LocationStore:
    return request.app.state.location_store


def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    locations: LocationStore = Depends(get_location_store),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    audit: AuditLogger = Depends(get_audit_logger),
) -> RideLifecycleService:
    return RideLifecycleService(db, locations, broadcaster, audit)
