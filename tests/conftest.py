"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are portable (string
ids, non-native enums), so the real metadata is created directly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.api.security import create_token
from src.domain.entities import utcnow
from src.domain.enums import BookingStatus, RideStatus, UserRole
from src.infrastructure.database import Base
from src.infrastructure.models import BookingModel, DriverModel


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

DRIVER_UID = "drv-marcus"
OTHER_DRIVER_UID = "drv-sofia"
BOOKER_UID = "booker-001"
BOOKER_EMAIL = "helen.park@example.com"
PASSENGER_EMAIL = "guest@example.com"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Fakes ─────────────────────────────────────────────────────────────


class FakeClock:
    """Deterministic clock for the location store."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingTransport:
    """Realtime transport that remembers every publish."""

    def __init__(self):
        self.published: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self.published.append((channel, event, payload))

    def events(self, event: Optional[str] = None) -> list[tuple[str, str, dict]]:
        return [p for p in self.published if event is None or p[1] == event]

    def channels(self, event: str) -> list[str]:
        return [channel for channel, e, _ in self.published if e == event]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


# ── Data helpers ──────────────────────────────────────────────────────


async def make_driver(
    session: AsyncSession, name: str = "Marcus Bell", user_uid: Optional[str] = DRIVER_UID
) -> DriverModel:
    driver = DriverModel(name=name, phone="+1-555-0101", user_uid=user_uid)
    session.add(driver)
    await session.commit()
    return driver


async def make_booking(
    session: AsyncSession,
    ride_status: Optional[RideStatus] = RideStatus.SCHEDULED,
    status: BookingStatus = BookingStatus.SCHEDULED,
    driver_uid: Optional[str] = DRIVER_UID,
    **overrides: Any,
) -> BookingModel:
    values = dict(
        status=status,
        current_ride_status=ride_status,
        assigned_driver_uid=driver_uid,
        assigned_driver_name="Marcus Bell" if driver_uid else None,
        booker_name="Helen Park",
        booker_email=BOOKER_EMAIL,
        passenger_name="Guest One",
        passenger_email=PASSENGER_EMAIL,
        passenger_phone="+1-555-0200",
        pickup_location="JFK Terminal 4",
        pickup_datetime=utcnow() + timedelta(hours=2),
        dropoff_location="The Plaza Hotel",
        created_by_user_id=BOOKER_UID,
    )
    values.update(overrides)
    booking = BookingModel(**values)
    session.add(booking)
    await session.commit()
    return booking


def auth_header(
    user_id: str, role: UserRole, email: Optional[str] = None
) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user_id, role, email=email)}"}


DRIVER_HEADERS = auth_header(DRIVER_UID, UserRole.DRIVER)
OTHER_DRIVER_HEADERS = auth_header(OTHER_DRIVER_UID, UserRole.DRIVER)
STAFF_HEADERS = auth_header("dispatch-001", UserRole.DISPATCHER)
BOOKER_HEADERS = auth_header(BOOKER_UID, UserRole.BOOKER, email=BOOKER_EMAIL)
STRANGER_HEADERS = auth_header("booker-999", UserRole.BOOKER, email="nobody@example.com")


# ── App ───────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def app(session_factory):
    """Application wired to the SQLite session factory.

    ASGITransport does not run the lifespan, so no background worker is
    started.
    """
    from src.api.app import create_app
    from src.api.dependencies import get_db, get_session_factory
    from src.api.middleware import limiter

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = _test_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    limiter.reset()
    yield application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
