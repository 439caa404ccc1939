"""
Realtime location hub
=====================

WS /hubs/location?access_token=<jwt>

Staff join ``admin`` on connect and drivers join their own ``driver:{uid}``
channel.  Clients then send JSON messages:

* ``{"type": "subscribe_ride", "ride_id": "..."}``
* ``{"type": "unsubscribe_ride", "ride_id": "..."}``
* ``{"type": "subscribe_driver", "driver_uid": "..."}``   (staff only)
* ``{"type": "unsubscribe_driver", "driver_uid": "..."}``

Each one is answered with ``subscription_confirmed`` or ``error``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.dependencies import get_session_factory
from src.api.security import InvalidToken, can_view_ride, decode_token
from src.domain.entities import CallerIdentity
from src.infrastructure.repositories import BookingRepository
from src.realtime.hub import ADMIN_CHANNEL, ConnectionManager, driver_channel, ride_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _token_from(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("access_token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"type": "error", "message": message})


async def _confirm(websocket: WebSocket, **kwargs: Any) -> None:
    await websocket.send_json({"type": "subscription_confirmed", **kwargs})


class LocationHubSession:
    """One connected client: its identity plus the message handlers."""

    def __init__(
        self,
        websocket: WebSocket,
        user: CallerIdentity,
        connections: ConnectionManager,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.websocket = websocket
        self.user = user
        self.connections = connections
        self.session_factory = session_factory

    async def on_connect(self) -> None:
        await self.connections.connect(self.websocket)
        if self.user.is_staff:
            self.connections.subscribe(self.websocket, ADMIN_CHANNEL)
        if self.user.is_driver:
            self.connections.subscribe(self.websocket, driver_channel(self.user.user_id))
        logger.info(
            "Client connected to location hub: user=%s role=%s",
            self.user.user_id,
            self.user.role.value if self.user.role else None,
        )

    async def handle(self, data: Any) -> None:
        if not isinstance(data, dict) or not data.get("type"):
            await _send_error(self.websocket, "Message type is required")
            return
        msg_type = data["type"]
        if msg_type == "subscribe_ride":
            await self._subscribe_ride(data.get("ride_id"))
        elif msg_type == "unsubscribe_ride":
            await self._unsubscribe(data.get("ride_id"), ride_channel, "ride_id")
        elif msg_type == "subscribe_driver":
            await self._subscribe_driver(data.get("driver_uid"))
        elif msg_type == "unsubscribe_driver":
            await self._unsubscribe(data.get("driver_uid"), driver_channel, "driver_uid")
        else:
            await _send_error(self.websocket, f"Unknown message type: {msg_type}")

    async def _subscribe_ride(self, ride_id: Optional[str]) -> None:
        if not ride_id:
            await _send_error(self.websocket, "subscribe_ride requires ride_id")
            return
        async with self.session_factory() as session:
            booking = await BookingRepository(session).get_by_id(str(ride_id))
        if booking is None:
            await _send_error(self.websocket, "Ride not found")
            return
        if not can_view_ride(self.user, booking):
            logger.warning(
                "User %s denied subscription to ride %s", self.user.user_id, ride_id
            )
            await _send_error(self.websocket, "Not authorized to track this ride")
            return
        self.connections.subscribe(self.websocket, ride_channel(booking.id))
        await _confirm(self.websocket, ride_id=booking.id)

    async def _subscribe_driver(self, driver_uid: Optional[str]) -> None:
        if not self.user.is_staff:
            await _send_error(self.websocket, "Only staff can follow a driver")
            return
        if not driver_uid:
            await _send_error(self.websocket, "subscribe_driver requires driver_uid")
            return
        self.connections.subscribe(self.websocket, driver_channel(str(driver_uid)))
        await _confirm(self.websocket, driver_uid=driver_uid)

    async def _unsubscribe(self, key: Optional[str], channel_for, field: str) -> None:
        if not key:
            await _send_error(self.websocket, f"{field} is required")
            return
        self.connections.unsubscribe(self.websocket, channel_for(str(key)))
        await self.websocket.send_json({"type": "unsubscribed", field: key})


@router.websocket("/hubs/location")
async def location_hub(
    websocket: WebSocket,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    token = _token_from(websocket)
    try:
        user = decode_token(token) if token else None
    except InvalidToken:
        user = None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connections: ConnectionManager = websocket.app.state.connections
    hub = LocationHubSession(websocket, user, connections, session_factory)
    await hub.on_connect()
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await _send_error(websocket, "Messages must be JSON")
                continue
            await hub.handle(data)
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(websocket)
        logger.info("Client disconnected from location hub: user=%s", user.user_id)
