"""
Ride status state machine.

Pure functions only: validating a transition and deriving the paired
booking status never touch storage.  Persisting the result is the job of
``RideLifecycleService``.

    Scheduled -> OnRoute -> Arrived -> PassengerOnboard -> Completed
        \\           \\          \\               \\
         +-----------+----------+----------------+--> Cancelled
"""

from __future__ import annotations

from typing import Optional

from .enums import (
    ACTIVE_RIDE_STATUSES,
    TERMINAL_RIDE_STATUSES,
    BookingStatus,
    RideStatus,
)
from .exceptions import InvalidStateTransition


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
    RideStatus.SCHEDULED: frozenset({RideStatus.ON_ROUTE, RideStatus.CANCELLED}),
    RideStatus.ON_ROUTE: frozenset({RideStatus.ARRIVED, RideStatus.CANCELLED}),
    RideStatus.ARRIVED: frozenset(
        {RideStatus.PASSENGER_ONBOARD, RideStatus.CANCELLED}
    ),
    RideStatus.PASSENGER_ONBOARD: frozenset(
        {RideStatus.COMPLETED, RideStatus.CANCELLED}
    ),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

# Ride statuses that move the booking status; the rest leave it alone.
BOOKING_STATUS_BY_RIDE_STATUS: dict[RideStatus, BookingStatus] = {
    RideStatus.PASSENGER_ONBOARD: BookingStatus.IN_PROGRESS,
    RideStatus.COMPLETED: BookingStatus.COMPLETED,
    RideStatus.CANCELLED: BookingStatus.CANCELLED,
}

TRACKING_STOPPED_REASONS: dict[RideStatus, str] = {
    RideStatus.COMPLETED: "Ride completed",
    RideStatus.CANCELLED: "Ride cancelled",
}


def effective_ride_status(current: Optional[RideStatus]) -> RideStatus:
    """A booking without a ride status validates as ``Scheduled``."""
    return current if current is not None else RideStatus.SCHEDULED


def can_transition(current: RideStatus, requested: RideStatus) -> bool:
    return requested in RIDE_TRANSITIONS.get(current, frozenset())


def validate_transition(
    current: Optional[RideStatus], requested: RideStatus
) -> None:
    """Raise ``InvalidStateTransition`` unless *current* -> *requested* is an edge."""
    current = effective_ride_status(current)
    if not can_transition(current, requested):
        raise InvalidStateTransition(current, requested)


def derive_booking_status(
    new_ride_status: RideStatus, current_booking_status: BookingStatus
) -> BookingStatus:
    return BOOKING_STATUS_BY_RIDE_STATUS.get(
        new_ride_status, current_booking_status
    )


def is_terminal(status: Optional[RideStatus]) -> bool:
    return status in TERMINAL_RIDE_STATUSES


def is_active(status: Optional[RideStatus]) -> bool:
    return status in ACTIVE_RIDE_STATUSES
