"""Tests for the WebSocket hub, the Redis transport/relay and hub sessions."""

import json
from unittest.mock import AsyncMock

import pytest

from src.api.routes.realtime import LocationHubSession
from src.domain.entities import CallerIdentity
from src.domain.enums import RideStatus, UserRole
from src.realtime.hub import ADMIN_CHANNEL, ConnectionManager, driver_channel, ride_channel
from src.realtime.redis_transport import RedisTransport, decode_envelope, encode_envelope
from src.workers.realtime_relay import relay_message
from tests.conftest import (
    BOOKER_EMAIL,
    DRIVER_UID,
    OTHER_DRIVER_UID,
    PASSENGER_EMAIL,
    make_booking,
)


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)


# ── ConnectionManager ─────────────────────────────────────────────────


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_publish_reaches_only_channel_members(self):
        hub = ConnectionManager()
        a, b = FakeWebSocket(), FakeWebSocket()
        await hub.connect(a)
        await hub.connect(b)
        hub.subscribe(a, ride_channel("r1"))
        hub.subscribe(b, ADMIN_CHANNEL)

        await hub.publish(ride_channel("r1"), "LocationUpdate", {"rideId": "r1"})

        assert a.accepted
        assert a.sent == [
            {"type": "LocationUpdate", "channel": "ride:r1", "data": {"rideId": "r1"}}
        ]
        assert b.sent == []

    @pytest.mark.asyncio
    async def test_failed_socket_is_dropped(self):
        hub = ConnectionManager()
        good, bad = FakeWebSocket(), FakeWebSocket(fail=True)
        for ws in (good, bad):
            await hub.connect(ws)
            hub.subscribe(ws, ADMIN_CHANNEL)

        await hub.publish(ADMIN_CHANNEL, "TrackingStopped", {"rideId": "r1"})

        assert len(good.sent) == 1
        assert hub.subscribers(ADMIN_CHANNEL) == 1
        assert hub.channels_of(bad) == set()

    @pytest.mark.asyncio
    async def test_unsubscribe_and_disconnect(self):
        hub = ConnectionManager()
        ws = FakeWebSocket()
        await hub.connect(ws)
        hub.subscribe(ws, ride_channel("r1"))
        hub.subscribe(ws, driver_channel("d1"))

        hub.unsubscribe(ws, ride_channel("r1"))
        assert hub.channels_of(ws) == {"driver:d1"}

        hub.disconnect(ws)
        assert hub.subscribers(driver_channel("d1")) == 0
        await hub.publish(driver_channel("d1"), "LocationUpdate", {})
        assert ws.sent == []


# ── Redis transport and relay ─────────────────────────────────────────


class TestRedisFanOut:
    @pytest.mark.asyncio
    async def test_transport_publishes_prefixed_envelope(self):
        client = AsyncMock()
        await RedisTransport(client).publish("ride:r1", "LocationUpdate", {"rideId": "r1"})

        client.publish.assert_awaited_once()
        channel, raw = client.publish.await_args.args
        assert channel == "realtime:ride:r1"
        assert decode_envelope(raw) == ("ride:r1", "LocationUpdate", {"rideId": "r1"})

    @pytest.mark.asyncio
    async def test_relay_forwards_to_local_hub(self):
        hub = ConnectionManager()
        ws = FakeWebSocket()
        await hub.connect(ws)
        hub.subscribe(ws, ADMIN_CHANNEL)
        message = {
            "type": "pmessage",
            "pattern": "realtime:*",
            "channel": "realtime:admin",
            "data": encode_envelope("admin", "RideStatusChanged", {"newStatus": "OnRoute"}),
        }

        assert await relay_message(message, hub)
        assert ws.sent[0]["type"] == "RideStatusChanged"
        assert ws.sent[0]["data"] == {"newStatus": "OnRoute"}

    @pytest.mark.asyncio
    async def test_relay_ignores_unusable_messages(self, caplog):
        hub = ConnectionManager()
        assert not await relay_message({"type": "psubscribe", "data": 1}, hub)
        assert not await relay_message(
            {"type": "pmessage", "channel": "realtime:admin", "data": "not json"}, hub
        )
        assert not await relay_message(
            {"type": "pmessage", "channel": "realtime:admin", "data": json.dumps({})}, hub
        )
        assert "Discarding malformed realtime envelope" in caplog.text


# ── Hub sessions (subscription authorization) ─────────────────────────


async def _open(user, session_factory):
    hub = ConnectionManager()
    ws = FakeWebSocket()
    session = LocationHubSession(ws, user, hub, session_factory)
    await session.on_connect()
    return session, hub, ws


class TestLocationHubSession:
    @pytest.mark.asyncio
    async def test_staff_join_admin_and_may_follow_drivers(self, session_factory):
        staff = CallerIdentity(user_id="dispatch-001", role=UserRole.DISPATCHER)
        session, hub, ws = await _open(staff, session_factory)

        await session.handle({"type": "subscribe_driver", "driver_uid": DRIVER_UID})

        assert hub.channels_of(ws) == {ADMIN_CHANNEL, f"driver:{DRIVER_UID}"}
        assert ws.sent[-1] == {"type": "subscription_confirmed", "driver_uid": DRIVER_UID}

    @pytest.mark.asyncio
    async def test_driver_joins_own_channel_only(self, session_factory):
        driver = CallerIdentity(user_id=DRIVER_UID, role=UserRole.DRIVER)
        session, hub, ws = await _open(driver, session_factory)

        await session.handle({"type": "subscribe_driver", "driver_uid": OTHER_DRIVER_UID})

        assert hub.channels_of(ws) == {f"driver:{DRIVER_UID}"}
        assert ws.sent[-1]["type"] == "error"

    @pytest.mark.asyncio
    async def test_assigned_driver_may_subscribe_to_ride(self, session_factory, db_session):
        booking = await make_booking(db_session, ride_status=RideStatus.ON_ROUTE)
        driver = CallerIdentity(user_id=DRIVER_UID, role=UserRole.DRIVER)
        session, hub, ws = await _open(driver, session_factory)

        await session.handle({"type": "subscribe_ride", "ride_id": booking.id})

        assert ws.sent[-1] == {"type": "subscription_confirmed", "ride_id": booking.id}
        assert ride_channel(booking.id) in hub.channels_of(ws)

    @pytest.mark.parametrize("email", [BOOKER_EMAIL.upper(), PASSENGER_EMAIL])
    @pytest.mark.asyncio
    async def test_booking_party_may_subscribe_to_ride(self, session_factory, db_session, email):
        booking = await make_booking(db_session, ride_status=RideStatus.ON_ROUTE)
        passenger = CallerIdentity(user_id="p-1", role=UserRole.BOOKER, email=email)
        session, hub, ws = await _open(passenger, session_factory)

        await session.handle({"type": "subscribe_ride", "ride_id": booking.id})

        assert ws.sent[-1]["type"] == "subscription_confirmed"

    @pytest.mark.asyncio
    async def test_other_driver_is_refused(self, session_factory, db_session):
        booking = await make_booking(db_session, ride_status=RideStatus.ON_ROUTE)
        other = CallerIdentity(user_id=OTHER_DRIVER_UID, role=UserRole.DRIVER)
        session, hub, ws = await _open(other, session_factory)

        await session.handle({"type": "subscribe_ride", "ride_id": booking.id})

        assert ws.sent[-1]["type"] == "error"
        assert ride_channel(booking.id) not in hub.channels_of(ws)

    @pytest.mark.asyncio
    async def test_unknown_ride_and_unknown_message(self, session_factory):
        staff = CallerIdentity(user_id="dispatch-001", role=UserRole.ADMIN)
        session, hub, ws = await _open(staff, session_factory)

        await session.handle({"type": "subscribe_ride", "ride_id": "missing"})
        assert ws.sent[-1] == {"type": "error", "message": "Ride not found"}

        await session.handle({"type": "dance"})
        assert ws.sent[-1] == {"type": "error", "message": "Unknown message type: dance"}

        await session.handle(["not", "an", "object"])
        assert ws.sent[-1]["type"] == "error"

    @pytest.mark.asyncio
    async def test_unsubscribe_ride(self, session_factory, db_session):
        booking = await make_booking(db_session, ride_status=RideStatus.ON_ROUTE)
        staff = CallerIdentity(user_id="dispatch-001", role=UserRole.ADMIN)
        session, hub, ws = await _open(staff, session_factory)
        await session.handle({"type": "subscribe_ride", "ride_id": booking.id})

        await session.handle({"type": "unsubscribe_ride", "ride_id": booking.id})

        assert hub.channels_of(ws) == {ADMIN_CHANNEL}
        assert ws.sent[-1] == {"type": "unsubscribed", "ride_id": booking.id}
