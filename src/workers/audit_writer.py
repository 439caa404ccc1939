"""
Background Audit Writer
=======================

Drains the ``AuditLogger`` queue every ``AUDIT_FLUSH_INTERVAL_SECONDS``
(default 2 s) and writes the entries to ``audit_logs`` in one transaction
per batch.  A failed batch is logged and dropped, never retried: auditing
must not pile up memory or block request handling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.models import AuditLogModel
from src.infrastructure.repositories import AuditLogRepository
from src.services.audit import AuditEntry, AuditLogger

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None
_session_factory: async_sessionmaker[AsyncSession] = async_session_factory


# ── Public API ────────────────────────────────────────────────────────


async def start_audit_writer(
    audit: AuditLogger,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> None:
    global _task, _stop_event, _session_factory
    _stop_event = asyncio.Event()
    _session_factory = session_factory
    _task = asyncio.create_task(_loop(audit))
    logger.info(
        "Audit writer started (interval=%ss)", settings.audit_flush_interval_seconds
    )


async def stop_audit_writer(audit: Optional[AuditLogger] = None) -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    if audit is not None:
        # Persist whatever is still queued before the process exits.
        await flush_audit_entries(audit, _session_factory)
    logger.info("Audit writer stopped")


async def flush_audit_entries(
    audit: AuditLogger,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> int:
    """Write every queued entry.  Returns the number persisted."""
    written = 0
    while True:
        batch = audit.drain(settings.audit_batch_size)
        if not batch:
            return written
        try:
            async with session_factory() as session:
                await AuditLogRepository(session).add_many(
                    _to_model(e) for e in batch
                )
                await session.commit()
            written += len(batch)
        except Exception:
            logger.exception("Failed to persist %d audit entries", len(batch))
            return written


# ── Internals ─────────────────────────────────────────────────────────


def _to_model(entry: AuditEntry) -> AuditLogModel:
    return AuditLogModel(
        id=entry.id,
        timestamp=entry.timestamp,
        user_id=entry.user_id,
        username=entry.username,
        user_role=entry.user_role,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        details=entry.details,
        result=entry.result,
        error_message=entry.error_message,
    )


async def _loop(audit: AuditLogger) -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            written = await flush_audit_entries(audit, _session_factory)
            if written:
                logger.debug("Audit writer persisted %d entries", written)
        except Exception:
            logger.exception("Unhandled error in audit writer")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.audit_flush_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next flush
