"""Domain enumerations shared by the lifecycle engine, persistence and API."""

import enum


class RideStatus(str, enum.Enum):
    """Driver-facing stage of a trip."""

    SCHEDULED = "Scheduled"
    ON_ROUTE = "OnRoute"
    ARRIVED = "Arrived"
    PASSENGER_ONBOARD = "PassengerOnboard"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class BookingStatus(str, enum.Enum):
    """Public-facing stage of a booking."""

    REQUESTED = "Requested"
    CONFIRMED = "Confirmed"
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"


# Location samples are only accepted while the ride is in one of these.
ACTIVE_RIDE_STATUSES: frozenset[RideStatus] = frozenset(
    {RideStatus.ON_ROUTE, RideStatus.ARRIVED, RideStatus.PASSENGER_ONBOARD}
)

TERMINAL_RIDE_STATUSES: frozenset[RideStatus] = frozenset(
    {RideStatus.COMPLETED, RideStatus.CANCELLED}
)


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"
    BOOKER = "booker"


STAFF_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.DISPATCHER})


class AuditResult(str, enum.Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    FORBIDDEN = "Forbidden"
