"""
Unit tests for AuditLogService - metadata-only operation records
"""

import pytest
import os
import tempfile
from datetime import datetime, timedelta, timezone

from nshot.config.database import Database
from nshot.services.audit_log import AuditLogService
from nshot.utils.identifiers import MAX_ENTRY_ID_LENGTH


class TestAuditLogService:
    """Test suite for AuditLogService functionality"""

    @pytest.fixture
    def temp_db(self):
        """Create a temporary database for testing"""
        fd, path = tempfile.mkstemp(suffix='.db')
        os.close(fd)
        yield path
        for suffix in ('', '-wal', '-shm'):
            try:
                os.unlink(path + suffix)
            except OSError:
                pass

    @pytest.fixture
    def audit_log(self, temp_db):
        """Create AuditLogService instance with temporary database"""
        return AuditLogService(Database(temp_db))

    @pytest.mark.asyncio
    async def test_database_initialization(self, audit_log):
        """Test that the audit_events table is created"""
        with audit_log._get_connection() as conn:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = [row[0] for row in cursor.fetchall()]
            assert 'audit_events' in tables

    @pytest.mark.asyncio
    async def test_record_and_list(self, audit_log):
        event_id = await audit_log.record("fetch", "id-1", "ok", remaining=3, token="tok", payload_size=12)

        events = await audit_log.list_events()
        assert len(events) == 1
        event = events[0]
        assert event.event_id == event_id
        assert event.action == "fetch"
        assert event.entry_id == "id-1"
        assert event.remaining == 3
        assert event.token == "tok"
        assert event.payload_size == 12

    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_filtered(self, audit_log):
        await audit_log.record("push", "a", "ok")
        await audit_log.record("push", "b", "ok")
        await audit_log.record("fetch", "a", "ok", remaining=0)

        events = await audit_log.list_events(entry_id="a")
        assert [e.action for e in events] == ["fetch", "push"]

        limited = await audit_log.list_events(limit=1)
        assert len(limited) == 1
        assert limited[0].entry_id == "a"

    @pytest.mark.asyncio
    async def test_record_rejects_invalid_event(self, audit_log):
        with pytest.raises(ValueError):
            await audit_log.record("fetch", "id-1", "ok", remaining=-1)

    @pytest.mark.asyncio
    async def test_outcome_counts(self, audit_log):
        await audit_log.record("fetch", "a", "ok")
        await audit_log.record("fetch", "a", "ok")
        await audit_log.record("fetch", "a", "EXHAUSTED")
        await audit_log.record("push", "b", "NOT_FOUND")

        counts = await audit_log.get_outcome_counts()
        assert counts == {"fetch": {"ok": 2, "EXHAUSTED": 1}, "push": {"NOT_FOUND": 1}}

        only_a = await audit_log.get_outcome_counts(entry_id="a")
        assert "push" not in only_a

    @pytest.mark.asyncio
    async def test_row_cap_drops_oldest_events(self, temp_db):
        audit_log = AuditLogService(Database(temp_db), max_events=5)
        for i in range(8):
            await audit_log.record("fetch", f"id-{i}", "NOT_FOUND", token="t")

        events = await audit_log.list_events(limit=100)
        assert len(events) == 5
        assert [e.entry_id for e in events] == [f"id-{i}" for i in range(7, 2, -1)]

    def test_row_cap_must_be_positive(self, temp_db):
        with pytest.raises(ValueError):
            AuditLogService(Database(temp_db), max_events=0)

    @pytest.mark.asyncio
    async def test_long_identifiers_and_tokens_are_clipped(self, audit_log):
        await audit_log.record("fetch", "x" * 1000, "NOT_FOUND", token="t" * 1000)

        event = (await audit_log.list_events())[0]
        assert event.entry_id == "x" * MAX_ENTRY_ID_LENGTH
        assert event.token == "t" * MAX_ENTRY_ID_LENGTH

    @pytest.mark.asyncio
    async def test_cleanup_old_events(self, audit_log):
        await audit_log.record("push", "old", "ok")
        await audit_log.record("push", "new", "ok")
        stale = (datetime.now(timezone.utc) - timedelta(days=120)).isoformat()
        with audit_log._get_connection() as conn:
            conn.execute("UPDATE audit_events SET timestamp = ? WHERE entry_id = 'old'", (stale,))
            conn.commit()

        assert await audit_log.cleanup_old_events(days_to_keep=90) == 1
        assert [e.entry_id for e in await audit_log.list_events()] == ["new"]
        assert await audit_log.cleanup_old_events(days_to_keep=90) == 0

    @pytest.mark.asyncio
    async def test_cleanup_rejects_non_positive_window(self, audit_log):
        with pytest.raises(ValueError):
            await audit_log.cleanup_old_events(days_to_keep=0)
