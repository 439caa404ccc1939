"""
Redis pub/sub transport.

Lets several API processes share one fan-out: every process publishes
events to Redis, and the ``realtime_relay`` worker in each process forwards
what it receives to its own ``ConnectionManager``.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

CHANNEL_PREFIX = "realtime:"


def encode_envelope(channel: str, event: str, payload: dict[str, Any]) -> str:
    return json.dumps(
        {"channel": channel, "event": event, "payload": payload}, default=str
    )


def decode_envelope(raw: str | bytes) -> tuple[str, str, dict[str, Any]]:
    data = json.loads(raw)
    return data["channel"], data["event"], data["payload"]


class RedisTransport:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        await self.redis.publish(
            f"{CHANNEL_PREFIX}{channel}", encode_envelope(channel, event, payload)
        )
