"""
In-process WebSocket hub.

Tracks which sockets joined which channel and delivers published events to
them.  Channel naming:

* ``ride:{ride_id}``      -- viewers of one ride (passenger, booker, staff)
* ``driver:{driver_uid}`` -- the driver's own devices and staff following them
* ``admin``               -- every staff dashboard
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"


def ride_channel(ride_id: str) -> str:
    return f"ride:{ride_id}"


def driver_channel(driver_uid: str) -> str:
    return f"driver:{driver_uid}"


class ConnectionManager:
    def __init__(self) -> None:
        self._channels: dict[str, set[WebSocket]] = defaultdict(set)
        self._memberships: dict[WebSocket, set[str]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._memberships.setdefault(websocket, set())

    def subscribe(self, websocket: WebSocket, channel: str) -> None:
        self._channels[channel].add(websocket)
        self._memberships.setdefault(websocket, set()).add(channel)
        logger.info("Connection %s subscribed to %s", id(websocket), channel)

    def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        members = self._channels.get(channel)
        if members is not None:
            members.discard(websocket)
            if not members:
                del self._channels[channel]
        self._memberships.get(websocket, set()).discard(channel)

    def disconnect(self, websocket: WebSocket) -> None:
        for channel in list(self._memberships.pop(websocket, set())):
            members = self._channels.get(channel)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self._channels[channel]

    def subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def channels_of(self, websocket: WebSocket) -> set[str]:
        return set(self._memberships.get(websocket, ()))

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Send ``{"type": event, "data": payload}`` to every socket on *channel*."""
        targets = list(self._channels.get(channel, ()))
        if not targets:
            return
        message = {"type": event, "channel": channel, "data": payload}
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in targets), return_exceptions=True
        )
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Dropping connection %s after failed send on %s: %s",
                    id(ws),
                    channel,
                    result,
                )
                self.disconnect(ws)
