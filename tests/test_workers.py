"""Tests for the background workers' start/stop loops."""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from src.domain.entities import LocationSample
from src.infrastructure.repositories import AuditLogRepository
from src.realtime.hub import ADMIN_CHANNEL, ConnectionManager
from src.realtime.redis_transport import encode_envelope
from src.services.audit import AuditActions, AuditLogger
from src.services.location_store import LocationStore
from src.workers import audit_writer, location_sweeper, realtime_relay


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_location_sweeper_purges_expired_entries(clock):
    store = LocationStore(expiration=timedelta(minutes=1), clock=clock)
    store.try_update_location(
        "drv-1", LocationSample(ride_id="ride-1", latitude=1.0, longitude=2.0)
    )
    clock.advance(61)

    with patch.object(location_sweeper.settings, "location_sweep_interval_seconds", 0.01):
        await location_sweeper.start_location_sweeper(store)
        await _wait_for(lambda: len(store) == 0)
        await location_sweeper.stop_location_sweeper()


@pytest.mark.asyncio
async def test_audit_writer_flushes_remainder_on_stop(session_factory):
    audit = AuditLogger()

    with patch.object(audit_writer.settings, "audit_flush_interval_seconds", 60):
        await audit_writer.start_audit_writer(audit, session_factory)
        await asyncio.sleep(0)
        audit.success(None, AuditActions.DRIVER_CREATED, "Driver", "d-1")
        await audit_writer.stop_audit_writer(audit)

    assert audit.pending() == 0
    async with session_factory() as session:
        rows = await AuditLogRepository(session).list_recent()
    assert [r.entity_id for r in rows] == ["d-1"]


class FakePubSub:
    def __init__(self, messages):
        self.messages = list(messages)
        self.patterns: list[str] = []
        self.closed = False

    async def psubscribe(self, pattern):
        self.patterns.append(pattern)

    async def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        if self.messages:
            return self.messages.pop(0)
        await asyncio.sleep(0.01)
        return None

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self, pubsub: FakePubSub):
        self._pubsub = pubsub

    def pubsub(self):
        return self._pubsub


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


@pytest.mark.asyncio
async def test_realtime_relay_delivers_to_local_sockets():
    pubsub = FakePubSub(
        [
            {
                "type": "pmessage",
                "pattern": "realtime:*",
                "channel": "realtime:admin",
                "data": encode_envelope(ADMIN_CHANNEL, "TrackingStopped", {"rideId": "r1"}),
            }
        ]
    )
    connections = ConnectionManager()
    socket = RecordingSocket()
    connections.subscribe(socket, ADMIN_CHANNEL)

    await realtime_relay.start_realtime_relay(FakeRedis(pubsub), connections)
    await _wait_for(lambda: socket.sent)
    await realtime_relay.stop_realtime_relay()

    assert pubsub.patterns == ["realtime:*"]
    assert pubsub.closed
    assert socket.sent[0]["type"] == "TrackingStopped"
