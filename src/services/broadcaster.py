"""
Event broadcaster.

Turns lifecycle events into realtime messages.  It knows nothing about
sockets: it only needs a transport with ``publish(channel, event, payload)``
(``ConnectionManager`` in a single process, ``RedisTransport`` across
processes).  A dashboard missing one push must never fail the write that
triggered it, so every send failure is logged and swallowed here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from src.domain.entities import LocationEntry, LocationSample, utcnow
from src.domain.enums import BookingStatus, RideStatus
from src.realtime.hub import ADMIN_CHANNEL, driver_channel, ride_channel

logger = logging.getLogger(__name__)

LOCATION_UPDATE = "LocationUpdate"
RIDE_STATUS_CHANGED = "RideStatusChanged"
TRACKING_STOPPED = "TrackingStopped"


class RealtimeTransport(Protocol):
    async def publish(
        self, channel: str, event: str, payload: dict[str, Any]
    ) -> None: ...


class EventBroadcaster:
    def __init__(self, transport: RealtimeTransport):
        self.transport = transport

    async def broadcast_location_update(
        self,
        ride_id: str,
        driver_uid: str,
        sample: LocationSample,
        driver_name: Optional[str] = None,
    ) -> None:
        payload = {
            "rideId": ride_id,
            "driverUid": driver_uid,
            "driverName": driver_name,
            "latitude": sample.latitude,
            "longitude": sample.longitude,
            "heading": sample.heading,
            "speed": sample.speed,
            "accuracy": sample.accuracy,
            "timestamp": sample.timestamp.isoformat(),
        }
        await self._fan_out(
            [ride_channel(ride_id), driver_channel(driver_uid), ADMIN_CHANNEL],
            LOCATION_UPDATE,
            payload,
        )

    async def broadcast_ride_status_changed(
        self,
        ride_id: str,
        driver_uid: str,
        new_status: RideStatus,
        driver_name: Optional[str] = None,
        passenger_name: Optional[str] = None,
        booking_status: Optional[BookingStatus] = None,
    ) -> None:
        payload = {
            "rideId": ride_id,
            "driverUid": driver_uid,
            "driverName": driver_name,
            "passengerName": passenger_name,
            "newStatus": new_status.value,
            "bookingStatus": booking_status.value if booking_status else None,
            "timestamp": utcnow().isoformat(),
        }
        await self._fan_out(
            [ride_channel(ride_id), driver_channel(driver_uid), ADMIN_CHANNEL],
            RIDE_STATUS_CHANGED,
            payload,
        )

    async def notify_tracking_stopped(
        self, ride_id: str, reason: str, driver_uid: Optional[str] = None
    ) -> None:
        payload = {
            "rideId": ride_id,
            "reason": reason,
            "timestamp": utcnow().isoformat(),
        }
        channels = [ride_channel(ride_id), ADMIN_CHANNEL]
        if driver_uid:
            channels.insert(1, driver_channel(driver_uid))
        await self._fan_out(channels, TRACKING_STOPPED, payload)

    async def on_location_updated(self, entry: LocationEntry) -> None:
        """Listener wired into ``LocationStore``."""
        await self.broadcast_location_update(
            entry.ride_id, entry.driver_uid, entry.sample, entry.driver_name
        )

    async def _fan_out(
        self, channels: list[str], event: str, payload: dict[str, Any]
    ) -> None:
        for channel in channels:
            try:
                await self.transport.publish(channel, event, payload)
            except Exception:
                logger.exception(
                    "Failed to publish %s for ride %s on %s",
                    event,
                    payload.get("rideId"),
                    channel,
                )
