"""
Value objects passed between the lifecycle components.

Nothing here is persisted: location samples live only in the in-memory
location store, and ``RideStatusChange`` is the result of one successful
transition handed back to the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import BookingStatus, RideStatus, STAFF_ROLES, UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class LocationSample:
    ride_id: str
    latitude: float
    longitude: float
    heading: Optional[float] = None  # degrees, 0 = north
    speed: Optional[float] = None  # m/s
    accuracy: Optional[float] = None  # metres
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LocationEntry:
    """A stored sample plus the metadata the store keeps about it."""

    sample: LocationSample
    driver_uid: str
    stored_at: datetime
    driver_name: Optional[str] = None

    @property
    def ride_id(self) -> str:
        return self.sample.ride_id

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.stored_at).total_seconds()


@dataclass(frozen=True)
class RideStatusChange:
    ride_id: str
    previous_ride_status: Optional[RideStatus]
    ride_status: RideStatus
    previous_booking_status: BookingStatus
    booking_status: BookingStatus
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as resolved from the bearer token."""

    user_id: str
    username: Optional[str] = None
    role: Optional[UserRole] = None
    email: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER
