"""
Background Realtime Relay
=========================

Only runs with ``REALTIME_BACKEND=redis``.  Pattern-subscribes to
``realtime:*`` and hands every envelope to this process's
``ConnectionManager``, so a status change handled by one API worker reaches
sockets connected to any other worker.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from src.realtime.hub import ConnectionManager
from src.realtime.redis_transport import CHANNEL_PREFIX, decode_envelope

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 2.0

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def start_realtime_relay(
    client: aioredis.Redis, connections: ConnectionManager
) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(client, connections))
    logger.info("Realtime relay started (pattern=%s*)", CHANNEL_PREFIX)


async def stop_realtime_relay() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Realtime relay stopped")


async def relay_message(message: dict, connections: ConnectionManager) -> bool:
    """Forward one pub/sub message.  Returns ``False`` for anything unusable."""
    if message is None or message.get("type") != "pmessage":
        return False
    try:
        channel, event, payload = decode_envelope(message["data"])
    except (ValueError, KeyError, TypeError):
        logger.warning("Discarding malformed realtime envelope on %s", message.get("channel"))
        return False
    await connections.publish(channel, event, payload)
    return True


async def _loop(client: aioredis.Redis, connections: ConnectionManager) -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        pubsub = client.pubsub()
        try:
            await pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
            while not _stop_event.is_set():
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is not None:
                    await relay_message(message, connections)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Realtime relay lost its subscription; reconnecting")
            await asyncio.sleep(RECONNECT_DELAY_SECONDS)
        finally:
            await pubsub.aclose()
