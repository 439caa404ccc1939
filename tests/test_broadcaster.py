"""Tests for the event broadcaster's channel fan-out."""

from datetime import datetime, timezone

import pytest

from src.domain.entities import LocationEntry, LocationSample
from src.domain.enums import BookingStatus, RideStatus
from src.services.broadcaster import (
    LOCATION_UPDATE,
    RIDE_STATUS_CHANGED,
    TRACKING_STOPPED,
    EventBroadcaster,
)

SAMPLE = LocationSample(
    ride_id="ride-1",
    latitude=40.6413,
    longitude=-73.7781,
    heading=90.0,
    speed=12.5,
    accuracy=5.0,
    timestamp=datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
)


class FlakyTransport:
    """Fails on one channel, records the rest."""

    def __init__(self, failing_channel: str):
        self.failing_channel = failing_channel
        self.delivered: list[str] = []

    async def publish(self, channel, event, payload):
        if channel == self.failing_channel:
            raise ConnectionError("redis down")
        self.delivered.append(channel)


@pytest.mark.asyncio
async def test_location_update_reaches_ride_driver_and_admin(transport):
    await EventBroadcaster(transport).broadcast_location_update(
        "ride-1", "drv-1", SAMPLE, driver_name="Marcus Bell"
    )
    assert transport.channels(LOCATION_UPDATE) == ["ride:ride-1", "driver:drv-1", "admin"]
    payload = transport.events(LOCATION_UPDATE)[0][2]
    assert payload == {
        "rideId": "ride-1",
        "driverUid": "drv-1",
        "driverName": "Marcus Bell",
        "latitude": 40.6413,
        "longitude": -73.7781,
        "heading": 90.0,
        "speed": 12.5,
        "accuracy": 5.0,
        "timestamp": "2026-10-19T09:00:00+00:00",
    }


@pytest.mark.asyncio
async def test_status_change_payload(transport):
    await EventBroadcaster(transport).broadcast_ride_status_changed(
        "ride-1",
        "drv-1",
        RideStatus.PASSENGER_ONBOARD,
        driver_name="Marcus Bell",
        passenger_name="Guest One",
        booking_status=BookingStatus.IN_PROGRESS,
    )
    assert transport.channels(RIDE_STATUS_CHANGED) == [
        "ride:ride-1",
        "driver:drv-1",
        "admin",
    ]
    payload = transport.events(RIDE_STATUS_CHANGED)[0][2]
    assert payload["newStatus"] == "PassengerOnboard"
    assert payload["bookingStatus"] == "InProgress"
    assert payload["passengerName"] == "Guest One"


@pytest.mark.asyncio
async def test_tracking_stopped_without_driver(transport):
    await EventBroadcaster(transport).notify_tracking_stopped("ride-1", "Ride cancelled")
    assert transport.channels(TRACKING_STOPPED) == ["ride:ride-1", "admin"]
    assert transport.events(TRACKING_STOPPED)[0][2]["reason"] == "Ride cancelled"


@pytest.mark.asyncio
async def test_tracking_stopped_with_driver(transport):
    await EventBroadcaster(transport).notify_tracking_stopped(
        "ride-1", "Ride completed", "drv-1"
    )
    assert transport.channels(TRACKING_STOPPED) == [
        "ride:ride-1",
        "driver:drv-1",
        "admin",
    ]


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed(caplog):
    flaky = FlakyTransport(failing_channel="driver:drv-1")
    await EventBroadcaster(flaky).broadcast_location_update("ride-1", "drv-1", SAMPLE)
    # The failing channel does not stop delivery to the others
    assert flaky.delivered == ["ride:ride-1", "admin"]
    assert "Failed to publish LocationUpdate for ride ride-1" in caplog.text


@pytest.mark.asyncio
async def test_store_listener_forwards_entry(transport):
    entry = LocationEntry(
        sample=SAMPLE,
        driver_uid="drv-1",
        stored_at=SAMPLE.timestamp,
        driver_name="Marcus Bell",
    )
    await EventBroadcaster(transport).on_location_updated(entry)
    assert len(transport.events(LOCATION_UPDATE)) == 3
    assert transport.events(LOCATION_UPDATE)[0][2]["driverName"] == "Marcus Bell"
