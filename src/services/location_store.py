"""
In-memory driver location store.
================================

Keeps the most recent GPS sample per ride, nothing is written to durable
storage.

Rules
-----
* **Rate limit** -- a ride accepts a new sample only once
  ``min_update_interval`` has elapsed since the last *accepted* one.
  Rejected samples leave the stored entry untouched.
* **Expiration** -- an entry older than ``expiration`` is treated as absent
  and evicted on read.  ``purge_expired`` lets the sweeper worker reclaim
  memory for rides nobody reads any more.
* **Notification** -- every accepted sample is handed to the injected
  listener on a fire-and-forget task.  Listener errors are logged and never
  reach the writer.

Concurrency
-----------
Rides are independent, so each ride id gets its own lock, created on first
write and dropped together with the entry.  There is no lock spanning
several rides.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional

from src.domain.entities import LocationEntry, LocationSample, utcnow

logger = logging.getLogger(__name__)

LocationListener = Callable[[LocationEntry], Awaitable[None]]


class LocationStore:
    def __init__(
        self,
        min_update_interval: timedelta = timedelta(seconds=15),
        expiration: timedelta = timedelta(hours=1),
        listener: Optional[LocationListener] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.min_update_interval = min_update_interval
        self.expiration = expiration
        self.listener = listener
        self._clock = clock
        self._entries: dict[str, LocationEntry] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._pending: set[asyncio.Task] = set()

    # ── Writes ────────────────────────────────────────────────────────

    def try_update_location(
        self,
        driver_uid: str,
        sample: LocationSample,
        driver_name: Optional[str] = None,
    ) -> bool:
        """Store *sample* unless the ride was updated too recently."""
        return self.accept_location(driver_uid, sample, driver_name) is not None

    def accept_location(
        self,
        driver_uid: str,
        sample: LocationSample,
        driver_name: Optional[str] = None,
    ) -> Optional[LocationEntry]:
        """Like ``try_update_location`` but hands back the stored entry (``None`` when rate limited)."""
        ride_id = sample.ride_id
        with self._lock_for(ride_id):
            now = self._clock()
            existing = self._entries.get(ride_id)
            if (
                existing is not None
                and not self._expired(existing, now)
                and now - existing.stored_at < self.min_update_interval
            ):
                logger.debug("Rate limited location update for ride %s", ride_id)
                return None

            entry = LocationEntry(
                sample=sample,
                driver_uid=driver_uid,
                stored_at=now,
                driver_name=driver_name,
            )
            self._entries[ride_id] = entry

        logger.debug(
            "Location updated for ride %s: (%s, %s)",
            ride_id,
            sample.latitude,
            sample.longitude,
        )
        self._notify(entry)
        return entry

    def remove_location(self, ride_id: str) -> None:
        with self._lock_for(ride_id):
            removed = self._entries.pop(ride_id, None)
            self._locks.pop(ride_id, None)
        if removed is not None:
            logger.debug("Removed location data for ride %s", ride_id)

    def purge_expired(self) -> int:
        """Evict every expired entry.  Returns how many were removed."""
        now = self._clock()
        removed = 0
        for ride_id in list(self._entries):
            with self._lock_for(ride_id):
                entry = self._entries.get(ride_id)
                if entry is not None and self._expired(entry, now):
                    del self._entries[ride_id]
                    self._locks.pop(ride_id, None)
                    removed += 1
        if removed:
            logger.debug("Cleaned up %d expired location entries", removed)
        return removed

    # ── Reads ─────────────────────────────────────────────────────────

    def get_entry(self, ride_id: str) -> Optional[LocationEntry]:
        if ride_id not in self._entries:
            return None
        with self._lock_for(ride_id):
            entry = self._entries.get(ride_id)
            if entry is None:
                self._locks.pop(ride_id, None)
                return None
            if self._expired(entry, self._clock()):
                del self._entries[ride_id]
                self._locks.pop(ride_id, None)
                return None
            return entry

    def get_latest_location(self, ride_id: str) -> Optional[LocationSample]:
        entry = self.get_entry(ride_id)
        return entry.sample if entry else None

    def get_all_active_locations(self) -> list[LocationEntry]:
        return self.get_locations(list(self._entries))

    def get_locations(self, ride_ids: Iterable[str]) -> list[LocationEntry]:
        result = []
        for ride_id in ride_ids:
            entry = self.get_entry(ride_id)
            if entry is not None:
                result.append(entry)
        return result

    def retry_after(self, ride_id: str) -> float:
        """Seconds until the ride accepts another sample (0 when it already does)."""
        entry = self._entries.get(ride_id)
        if entry is None:
            return 0.0
        elapsed = self._clock() - entry.stored_at
        return max(0.0, (self.min_update_interval - elapsed).total_seconds())

    def __len__(self) -> int:
        return len(self._entries)

    # ── Notifications ─────────────────────────────────────────────────

    async def flush_notifications(self) -> None:
        """Wait for every scheduled listener call to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _notify(self, entry: LocationEntry) -> None:
        if self.listener is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; location update for ride %s not broadcast",
                entry.ride_id,
            )
            return
        task = loop.create_task(self._deliver(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, entry: LocationEntry) -> None:
        try:
            await self.listener(entry)
        except Exception:
            logger.exception(
                "Location listener failed for ride %s", entry.ride_id
            )

    # ── Internals ─────────────────────────────────────────────────────

    def _lock_for(self, ride_id: str) -> threading.Lock:
        lock = self._locks.get(ride_id)
        if lock is None:
            lock = self._locks.setdefault(ride_id, threading.Lock())
        return lock

    def _expired(self, entry: LocationEntry, now: datetime) -> bool:
        return now - entry.stored_at > self.expiration
