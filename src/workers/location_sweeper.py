"""
Background Location Sweeper
===========================

Reads already evict expired samples; this loop additionally purges entries
for rides nobody looks at any more, every
``LOCATION_SWEEP_INTERVAL_SECONDS`` (default 5 min).
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.services.location_store import LocationStore

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def start_location_sweeper(store: LocationStore) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(store))
    logger.info(
        "Location sweeper started (interval=%ss)",
        settings.location_sweep_interval_seconds,
    )


async def stop_location_sweeper() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Location sweeper stopped")


async def _loop(store: LocationStore) -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.location_sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass
        try:
            removed = store.purge_expired()
            if removed:
                logger.info("Location sweep: %d expired entries purged", removed)
        except Exception:
            logger.exception("Unhandled error in location sweep")
