"""
Ride Lifecycle Orchestrator
===========================

The only component allowed to change a booking's persisted status.  It
ties together:

* the pure state machine (``src.domain.ride_state``),
* the in-memory ``LocationStore``,
* the ``EventBroadcaster`` for realtime pushes,
* the ``AuditLogger`` for the compliance trail.

Concurrency safety
------------------
Two status updates for the same ride may race.  The new statuses are
written with a compare-and-swap UPDATE conditioned on the ride status read
at the start of the request, so the loser sees zero rows updated and gets an
``InvalidStateTransition`` computed from the fresh status.  Different rides
never contend.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import (
    CallerIdentity,
    LocationEntry,
    LocationSample,
    RideStatusChange,
    utcnow,
)
from src.domain.enums import BookingStatus, RideStatus
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
    RideNotFound,
)
from src.domain.ride_state import (
    TRACKING_STOPPED_REASONS,
    derive_booking_status,
    effective_ride_status,
    is_active,
    is_terminal,
    validate_transition,
)
from src.infrastructure.models import BookingModel
from src.infrastructure.repositories import BookingRepository, DriverRepository
from src.services.audit import AuditActions, AuditLogger
from src.services.broadcaster import EventBroadcaster
from src.services.location_store import LocationStore

logger = logging.getLogger(__name__)

# Bookings can only be cancelled by staff or their owner before a driver is scheduled.
CANCELLABLE_BOOKING_STATUSES = (BookingStatus.REQUESTED, BookingStatus.CONFIRMED)

# Closed bookings never take a driver again.
CLOSED_BOOKING_STATUSES = (
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.NO_SHOW,
)


class RideLifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        locations: LocationStore,
        broadcaster: EventBroadcaster,
        audit: Optional[AuditLogger] = None,
    ):
        self.session = session
        self.bookings = BookingRepository(session)
        self.drivers = DriverRepository(session)
        self.locations = locations
        self.broadcaster = broadcaster
        self.audit = audit

    # ── Driver status updates ─────────────────────────────────────────

    async def update_ride_status(
        self,
        ride_id: str,
        driver_uid: str,
        requested: RideStatus,
        actor: Optional[CallerIdentity] = None,
    ) -> RideStatusChange:
        booking = await self.bookings.get_by_id(ride_id)
        if booking is None:
            raise RideNotFound(ride_id)
        if booking.assigned_driver_uid != driver_uid:
            logger.warning(
                "Driver %s attempted to update ride %s assigned to someone else",
                driver_uid,
                ride_id,
            )
            raise NotAssignedDriver(ride_id)

        current = booking.current_ride_status
        previous_booking_status = booking.status
        try:
            validate_transition(current, requested)
        except InvalidStateTransition as exc:
            self._audit_rejected_transition(actor, ride_id, driver_uid, exc)
            raise

        new_booking_status = derive_booking_status(requested, booking.status)
        swapped = await self.bookings.update_ride_status(
            ride_id,
            requested,
            new_booking_status,
            expected_ride_status=current,
            modified_by=actor.user_id if actor else driver_uid,
        )
        if not swapped:
            await self.bookings.refresh(booking)
            exc = InvalidStateTransition(
                effective_ride_status(booking.current_ride_status), requested
            )
            logger.info(
                "Concurrent status update on ride %s; %s", ride_id, exc.message
            )
            self._audit_rejected_transition(actor, ride_id, driver_uid, exc)
            raise exc
        await self.session.commit()
        await self.bookings.refresh(booking)

        change = RideStatusChange(
            ride_id=ride_id,
            previous_ride_status=current,
            ride_status=requested,
            previous_booking_status=previous_booking_status,
            booking_status=new_booking_status,
        )
        if self.audit:
            self.audit.success(
                actor,
                AuditActions.BOOKING_UPDATED,
                "Booking",
                ride_id,
                details={
                    "previousRideStatus": effective_ride_status(current).value,
                    "newRideStatus": requested.value,
                    "newBookingStatus": new_booking_status.value,
                    "driverUid": driver_uid,
                    "passengerName": booking.passenger_name,
                },
            )

        await self.broadcaster.broadcast_ride_status_changed(
            ride_id,
            driver_uid,
            requested,
            driver_name=booking.assigned_driver_name,
            passenger_name=booking.passenger_name,
            booking_status=new_booking_status,
        )

        if is_terminal(requested):
            reason = TRACKING_STOPPED_REASONS[requested]
            self.locations.remove_location(ride_id)
            await self.broadcaster.notify_tracking_stopped(ride_id, reason, driver_uid)
            logger.info("Location tracking stopped for ride %s: %s", ride_id, reason)

        logger.info(
            "Driver %s updated ride %s status to %s", driver_uid, ride_id, requested.value
        )
        return change

    # ── Driver location updates ───────────────────────────────────────

    async def submit_location_update(
        self, ride_id: str, driver_uid: str, sample: LocationSample
    ) -> LocationEntry:
        booking = await self.bookings.get_by_id(ride_id)
        # Someone else's ride looks exactly like a missing one.
        if booking is None or booking.assigned_driver_uid != driver_uid:
            raise RideNotFound(ride_id)
        if not is_active(booking.current_ride_status):
            raise InactiveRide(ride_id, booking.current_ride_status)

        entry = self.locations.accept_location(
            driver_uid, sample, driver_name=booking.assigned_driver_name
        )
        if entry is None:
            raise LocationRateLimited(ride_id, self.locations.retry_after(ride_id))

        logger.debug(
            "Location updated for ride %s by driver %s: (%s, %s), heading=%s, speed=%s",
            ride_id,
            driver_uid,
            sample.latitude,
            sample.longitude,
            sample.heading,
            sample.speed,
        )
        return entry

    # ── Booking-level actions ─────────────────────────────────────────

    async def create_booking(
        self, booking: BookingModel, actor: CallerIdentity
    ) -> BookingModel:
        booking.status = BookingStatus.REQUESTED
        booking.current_ride_status = None
        booking.created_by_user_id = actor.user_id
        booking = await self.bookings.create(booking)
        if self.audit:
            self.audit.success(
                actor,
                AuditActions.BOOKING_CREATED,
                "Booking",
                booking.id,
                details={"passengerName": booking.passenger_name},
            )
        logger.info("Booking %s created by %s", booking.id, actor.user_id)
        return booking

    async def assign_driver(
        self, booking_id: str, driver_id: str, actor: CallerIdentity
    ) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise DriverNotFound(driver_id)
        if not driver.user_uid:
            if self.audit:
                self.audit.failure(
                    actor,
                    AuditActions.DRIVER_ASSIGNED,
                    "Booking",
                    booking_id,
                    error_message="Driver missing user uid",
                    details={"driverId": driver.id, "driverName": driver.name},
                )
            raise DriverNotLinked(driver_id)

        previous = booking.status
        previous_ride_status = booking.current_ride_status
        if previous in CLOSED_BOOKING_STATUSES or is_terminal(previous_ride_status):
            exc = BookingNotAssignable(booking_id, previous.value)
            if self.audit:
                self.audit.failure(
                    actor,
                    AuditActions.DRIVER_ASSIGNED,
                    "Booking",
                    booking_id,
                    error_message=exc.message,
                    details={"driverId": driver.id, "driverName": driver.name},
                )
            raise exc

        swapped = await self.bookings.update_driver_assignment(
            booking_id,
            driver.id,
            driver.user_uid,
            driver.name,
            status=(
                BookingStatus.SCHEDULED
                if previous in CANCELLABLE_BOOKING_STATUSES
                else previous
            ),
            ride_status=previous_ride_status or RideStatus.SCHEDULED,
            expected_status=previous,
            expected_ride_status=previous_ride_status,
            modified_by=actor.user_id,
        )
        if not swapped:
            await self.bookings.refresh(booking)
            raise BookingNotAssignable(booking_id, booking.status.value)
        await self.session.commit()
        await self.bookings.refresh(booking)
        if self.audit:
            self.audit.success(
                actor,
                AuditActions.DRIVER_ASSIGNED,
                "Booking",
                booking_id,
                details={
                    "driverId": driver.id,
                    "driverName": driver.name,
                    "driverUid": driver.user_uid,
                    "passengerName": booking.passenger_name,
                },
            )
        logger.info(
            "Driver %s (uid %s) assigned to booking %s",
            driver.name,
            driver.user_uid,
            booking_id,
        )
        return booking

    async def cancel_booking(
        self, booking_id: str, actor: CallerIdentity
    ) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        if not actor.is_staff and booking.created_by_user_id != actor.user_id:
            logger.warning(
                "User %s attempted to cancel booking %s they don't own",
                actor.user_id,
                booking_id,
            )
            if self.audit:
                self.audit.forbidden(
                    actor, AuditActions.BOOKING_CANCELLED, "Booking", booking_id
                )
            raise BookingAccessDenied(booking_id)

        previous = booking.status
        if previous not in CANCELLABLE_BOOKING_STATUSES:
            exc = BookingNotCancellable(booking_id, previous.value)
            if self.audit:
                self.audit.failure(
                    actor,
                    AuditActions.BOOKING_CANCELLED,
                    "Booking",
                    booking_id,
                    error_message=exc.message,
                )
            raise exc

        ride_status = (
            RideStatus.CANCELLED if booking.current_ride_status is not None else None
        )
        swapped = await self.bookings.update_status(
            booking_id,
            BookingStatus.CANCELLED,
            expected_status=previous,
            ride_status=ride_status,
            modified_by=actor.user_id,
        )
        if not swapped:
            await self.bookings.refresh(booking)
            raise BookingNotCancellable(booking_id, booking.status.value)
        await self.session.commit()
        await self.bookings.refresh(booking)

        if ride_status is not None:
            self.locations.remove_location(booking_id)
            await self.broadcaster.notify_tracking_stopped(
                booking_id,
                TRACKING_STOPPED_REASONS[RideStatus.CANCELLED],
                booking.assigned_driver_uid,
            )

        if self.audit:
            self.audit.success(
                actor,
                AuditActions.BOOKING_CANCELLED,
                "Booking",
                booking_id,
                details={
                    "previousStatus": previous.value,
                    "passengerName": booking.passenger_name,
                    "cancelledBy": actor.user_id,
                },
            )
        logger.info("Booking %s cancelled by user %s", booking_id, actor.user_id)
        return booking

    # ── Helpers ───────────────────────────────────────────────────────

    def _audit_rejected_transition(
        self,
        actor: Optional[CallerIdentity],
        ride_id: str,
        driver_uid: str,
        exc: InvalidStateTransition,
    ) -> None:
        if not self.audit:
            return
        self.audit.failure(
            actor,
            AuditActions.BOOKING_UPDATED,
            "Booking",
            ride_id,
            error_message=exc.message,
            details={
                "currentStatus": exc.current.value,
                "requestedStatus": exc.requested.value,
                "driverUid": driver_uid,
            },
        )
