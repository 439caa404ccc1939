"""Tests for the audit queue and its background writer."""

import json
from unittest.mock import patch

import pytest

from src.domain.entities import CallerIdentity
from src.domain.enums import AuditResult, UserRole
from src.infrastructure.repositories import AuditLogRepository
from src.services.audit import AuditActions, AuditLogger
from src.workers.audit_writer import flush_audit_entries

STAFF = CallerIdentity(user_id="dispatch-001", username="dispatch", role=UserRole.DISPATCHER)


class TestAuditLogger:
    def test_record_enqueues_without_io(self):
        audit = AuditLogger()
        audit.success(
            STAFF, AuditActions.BOOKING_CREATED, "Booking", "b-1", details={"passengerName": "Guest"}
        )

        [entry] = audit.drain()
        assert entry.user_id == "dispatch-001"
        assert entry.username == "dispatch"
        assert entry.user_role == "dispatcher"
        assert entry.result == AuditResult.SUCCESS
        assert json.loads(entry.details) == {"passengerName": "Guest"}

    def test_anonymous_failure(self):
        audit = AuditLogger()
        audit.failure(None, AuditActions.DRIVER_ASSIGNED, "Booking", "b-1", error_message="boom")

        [entry] = audit.drain()
        assert entry.user_id is None
        assert entry.result == AuditResult.FAILED
        assert entry.error_message == "boom"

    def test_full_queue_drops_entry(self, caplog):
        audit = AuditLogger(maxsize=1)
        audit.success(STAFF, AuditActions.BOOKING_CREATED, "Booking", "b-1")
        audit.forbidden(STAFF, AuditActions.BOOKING_CANCELLED, "Booking", "b-2")

        assert audit.pending() == 1
        assert "Audit queue full" in caplog.text

    def test_drain_respects_limit(self):
        audit = AuditLogger()
        for i in range(5):
            audit.success(STAFF, AuditActions.BOOKING_UPDATED, "Booking", f"b-{i}")

        assert len(audit.drain(2)) == 2
        assert audit.pending() == 3


class TestAuditWriter:
    @pytest.mark.asyncio
    async def test_flush_persists_queued_entries(self, session_factory):
        audit = AuditLogger()
        audit.success(STAFF, AuditActions.BOOKING_CREATED, "Booking", "b-1")
        audit.forbidden(STAFF, AuditActions.BOOKING_CANCELLED, "Booking", "b-2")

        written = await flush_audit_entries(audit, session_factory)

        assert written == 2
        assert audit.pending() == 0
        async with session_factory() as session:
            rows = await AuditLogRepository(session).list_recent()
        assert {r.entity_id for r in rows} == {"b-1", "b-2"}
        assert {r.result for r in rows} == {AuditResult.SUCCESS, AuditResult.FORBIDDEN}

    @pytest.mark.asyncio
    async def test_flush_writes_in_batches(self, session_factory):
        audit = AuditLogger()
        for i in range(5):
            audit.success(STAFF, AuditActions.BOOKING_UPDATED, "Booking", f"b-{i}")

        with patch("src.workers.audit_writer.settings.audit_batch_size", 2):
            written = await flush_audit_entries(audit, session_factory)

        assert written == 5
        async with session_factory() as session:
            rows = await AuditLogRepository(session).list_recent(take=10, entity_id="b-4")
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_failed_batch_is_dropped(self, caplog):
        audit = AuditLogger()
        audit.success(STAFF, AuditActions.BOOKING_CREATED, "Booking", "b-1")

        def broken_factory():
            raise ConnectionError("database unavailable")

        written = await flush_audit_entries(audit, broken_factory)

        assert written == 0
        assert audit.pending() == 0
        assert "Failed to persist 1 audit entries" in caplog.text
