"""Errors raised by the ride lifecycle engine.

All of them are expected, recoverable client errors; the API layer maps each
class to an HTTP status in ``src.api.app``.
"""

from __future__ import annotations

from .enums import RideStatus


class RideLifecycleError(Exception):
    """Base class for lifecycle errors surfaced to the caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RideNotFound(RideLifecycleError):
    """Ride is absent, or the caller may not know it exists."""

    def __init__(self, ride_id: str):
        super().__init__("Ride not found")
        self.ride_id = ride_id


class BookingNotFound(RideLifecycleError):
    def __init__(self, booking_id: str):
        super().__init__("Booking not found")
        self.booking_id = booking_id


class DriverNotFound(RideLifecycleError):
    def __init__(self, driver_id: str):
        super().__init__("Driver not found")
        self.driver_id = driver_id


class NotAssignedDriver(RideLifecycleError):
    """Authenticated driver is not the one assigned to the ride."""

    def __init__(self, ride_id: str):
        super().__init__("You are not the assigned driver for this ride")
        self.ride_id = ride_id


class BookingAccessDenied(RideLifecycleError):
    def __init__(self, booking_id: str):
        super().__init__("You do not have permission to modify this booking")
        self.booking_id = booking_id


class InvalidStateTransition(RideLifecycleError):
    """Raised when a ride status change violates the state machine."""

    def __init__(self, current: RideStatus, requested: RideStatus):
        super().__init__(
            f"Invalid status transition from {current.value} to {requested.value}"
        )
        self.current = current
        self.requested = requested


class InactiveRide(RideLifecycleError):
    def __init__(self, ride_id: str, status: RideStatus | None):
        super().__init__("Location tracking not active for this ride")
        self.ride_id = ride_id
        self.status = status


class LocationRateLimited(RideLifecycleError):
    def __init__(self, ride_id: str, retry_after: float):
        super().__init__("Location update received too soon after the previous one")
        self.ride_id = ride_id
        self.retry_after = retry_after


class BookingNotCancellable(RideLifecycleError):
    def __init__(self, booking_id: str, status: str):
        super().__init__(f"Cannot cancel booking with status: {status}")
        self.booking_id = booking_id
        self.status = status


class BookingNotAssignable(RideLifecycleError):
    def __init__(self, booking_id: str, status: str):
        super().__init__(f"Cannot assign a driver to a booking with status: {status}")
        self.booking_id = booking_id
        self.status = status


class DriverNotLinked(RideLifecycleError):
    """Driver has no stable user id, so the driver app could never see the ride."""

    def __init__(self, driver_id: str):
        super().__init__(
            "Cannot assign driver without a user uid. "
            "Link the driver to an auth server user first."
        )
        self.driver_id = driver_id
