"""
Audit trail sink.

``record`` never awaits I/O: entries go onto a bounded in-memory queue and
the ``audit_writer`` worker persists them in batches.  Auditing must never
break or slow down the request that produced the event.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.domain.entities import CallerIdentity, utcnow
from src.domain.enums import AuditResult

logger = logging.getLogger(__name__)


class AuditActions:
    BOOKING_CREATED = "Booking.Created"
    BOOKING_UPDATED = "Booking.Updated"
    BOOKING_CANCELLED = "Booking.Cancelled"
    DRIVER_ASSIGNED = "Driver.Assigned"
    DRIVER_CREATED = "Driver.Created"


@dataclass
class AuditEntry:
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    user_role: Optional[str] = None
    result: AuditResult = AuditResult.SUCCESS
    details: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)


class AuditLogger:
    def __init__(self, maxsize: int = 10_000):
        self._queue: asyncio.Queue[AuditEntry] = asyncio.Queue(maxsize=maxsize)

    def record(
        self,
        identity: Optional[CallerIdentity],
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        result: AuditResult = AuditResult.SUCCESS,
        details: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            entry = AuditEntry(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=identity.user_id if identity else None,
                username=identity.username if identity else None,
                user_role=identity.role.value if identity and identity.role else None,
                result=result,
                details=json.dumps(details, default=str) if details else None,
                error_message=error_message,
            )
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning("Audit queue full; dropping %s on %s %s", action, entity_type, entity_id)
            return
        except Exception:
            logger.exception("Failed to record audit entry for action %s", action)
            return

        logger.info(
            "Audit: %s by %s (%s) on %s %s - %s",
            action,
            entry.username,
            entry.user_role,
            entity_type,
            entity_id or "N/A",
            result.value,
        )

    def success(self, identity, action, entity_type, entity_id=None, details=None) -> None:
        self.record(identity, action, entity_type, entity_id, AuditResult.SUCCESS, details)

    def failure(
        self, identity, action, entity_type, entity_id=None, error_message=None, details=None
    ) -> None:
        self.record(
            identity, action, entity_type, entity_id, AuditResult.FAILED, details, error_message
        )

    def forbidden(self, identity, action, entity_type, entity_id=None) -> None:
        self.record(identity, action, entity_type, entity_id, AuditResult.FORBIDDEN)

    def drain(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """Pop up to *limit* queued entries without waiting."""
        entries: list[AuditEntry] = []
        while not self._queue.empty() and (limit is None or len(entries) < limit):
            entries.append(self._queue.get_nowait())
        return entries

    def pending(self) -> int:
        return self._queue.qsize()
