"""
Unit tests for AccessCoordinator - push/fetch/admin transactions
"""

import asyncio
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor

import pytest

from nshot.config.database import Database
from nshot.errors import (
    NotFoundError,
    ExhaustedError,
    AlreadyExistsError,
    PayloadTooLargeError,
    InvalidRequestError,
)
from nshot.models.operations import AdminCommand, MeteringPolicy
from nshot.services.access_coordinator import AccessCoordinator
from nshot.services.audit_log import AuditLogService
from nshot.services.blob_store import BlobStore
from nshot.services.identifier_registry import IdentifierRegistry
from nshot.services.provisioning import generate


class TestAccessCoordinator:
    """Test suite for AccessCoordinator functionality"""

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
    def database(self, temp_db):
        return Database(temp_db)

    @pytest.fixture
    def registry(self, database):
        return IdentifierRegistry(database)

    @pytest.fixture
    def blob_store(self, database):
        return BlobStore(database, max_payload_bytes=1024)

    @pytest.fixture
    def audit_log(self, database):
        return AuditLogService(database)

    @pytest.fixture
    def coordinator(self, registry, blob_store, audit_log):
        """Coordinator with default (fetch-only) metering and budget 2"""
        return AccessCoordinator(registry, blob_store, audit_log=audit_log, default_budget=2)

    @pytest.mark.asyncio
    async def test_hello_scenario(self, registry, coordinator):
        """One identifier with budget 2: two fetches, exhaustion, reset, fetch again"""
        snapshot = generate(1, 2)
        registry.load_snapshot(snapshot)
        entry_id = snapshot.entry_ids[0]

        await coordinator.push(entry_id, b"hello")

        first = await coordinator.fetch(entry_id, "t1")
        assert (first.payload, first.remaining) == (b"hello", 1)

        second = await coordinator.fetch(entry_id, "t2")
        assert (second.payload, second.remaining) == (b"hello", 0)
        assert second.exhausted is True

        with pytest.raises(ExhaustedError):
            await coordinator.fetch(entry_id, "t3")

        result = await coordinator.admin(AdminCommand.RESET, entry_id)
        assert result.changed is True
        assert result.entries[0].remaining == 2

        fourth = await coordinator.fetch(entry_id, "t4")
        assert (fourth.payload, fourth.remaining) == (b"hello", 1)

    @pytest.mark.asyncio
    async def test_push_requires_registered_id(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.push("invented-id", b"data")

    @pytest.mark.asyncio
    async def test_push_is_unmetered_by_default(self, registry, coordinator):
        registry.insert("id-1", 2)

        result = await coordinator.push("id-1", b"a")
        await coordinator.push("id-1", b"b")

        assert result.remaining == 2
        assert registry.lookup("id-1").remaining == 2

    @pytest.mark.asyncio
    async def test_push_too_large(self, registry, coordinator):
        registry.insert("id-1", 2)
        with pytest.raises(PayloadTooLargeError):
            await coordinator.push("id-1", b"x" * 1025)

    @pytest.mark.asyncio
    async def test_metered_push_consumes_budget(self, registry, blob_store, audit_log):
        coordinator = AccessCoordinator(registry, blob_store, audit_log=audit_log,
                                        metering=MeteringPolicy.PUSH_AND_FETCH)
        registry.insert("id-1", 2)

        pushed = await coordinator.push("id-1", b"data")
        assert pushed.remaining == 1

        fetched = await coordinator.fetch("id-1", "t")
        assert fetched.remaining == 0

        with pytest.raises(ExhaustedError):
            await coordinator.push("id-1", b"again")
        # exhausted push does not overwrite the payload
        assert blob_store.get("id-1") == b"data"

    @pytest.mark.asyncio
    async def test_fetch_round_trip_is_byte_identical(self, registry, coordinator):
        registry.insert("id-1", 1)
        payload = bytes(range(256))
        await coordinator.push("id-1", payload)

        result = await coordinator.fetch("id-1", "token")
        assert result.payload == payload
        assert result.token == "token"

    @pytest.mark.asyncio
    async def test_fetch_unknown_id(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.fetch("missing", "t")

    @pytest.mark.asyncio
    async def test_fetch_without_payload_keeps_budget(self, registry, coordinator):
        registry.insert("id-1", 2)

        with pytest.raises(NotFoundError) as exc_info:
            await coordinator.fetch("id-1", "t")
        assert exc_info.value.detail == "no payload stored"
        assert registry.lookup("id-1").remaining == 2

    @pytest.mark.asyncio
    async def test_fetch_empty_token(self, registry, coordinator):
        registry.insert("id-1", 2)
        await coordinator.push("id-1", b"data")

        with pytest.raises(InvalidRequestError):
            await coordinator.fetch("id-1", "")
        with pytest.raises(InvalidRequestError):
            await coordinator.fetch("id-1", "   ")
        assert registry.lookup("id-1").remaining == 2

    @pytest.mark.asyncio
    async def test_budget_is_strictly_decreasing(self, registry, coordinator):
        registry.insert("id-1", 5)
        await coordinator.push("id-1", b"data")

        observed = []
        for i in range(5):
            observed.append((await coordinator.fetch("id-1", f"t{i}")).remaining)

        assert observed == [4, 3, 2, 1, 0]
        for _ in range(3):
            with pytest.raises(ExhaustedError):
                await coordinator.fetch("id-1", "late")

    @pytest.mark.asyncio
    async def test_exhausted_entry_stays_inspectable(self, registry, coordinator):
        registry.insert("id-1", 1)
        await coordinator.push("id-1", b"data")
        await coordinator.fetch("id-1", "t")

        result = await coordinator.admin(AdminCommand.INSPECT, "id-1")
        assert result.changed is False
        assert result.entries[0].remaining == 0

    @pytest.mark.asyncio
    async def test_purge_on_exhaust(self, registry, blob_store, audit_log):
        coordinator = AccessCoordinator(registry, blob_store, audit_log=audit_log, purge_on_exhaust=True)
        registry.insert("id-1", 1)
        await coordinator.push("id-1", b"secret")

        result = await coordinator.fetch("id-1", "t")
        assert result.payload == b"secret"
        assert blob_store.get("id-1") is None

        # Still reported as exhausted, not as unknown
        with pytest.raises(ExhaustedError):
            await coordinator.fetch("id-1", "t2")

    @pytest.mark.asyncio
    async def test_reset_allows_exactly_budget_more_fetches(self, registry, coordinator):
        registry.insert("id-1", 3)
        await coordinator.push("id-1", b"data")
        for i in range(3):
            await coordinator.fetch("id-1", f"t{i}")

        await coordinator.admin(AdminCommand.RESET, "id-1")

        for i in range(3):
            await coordinator.fetch("id-1", f"again{i}")
        with pytest.raises(ExhaustedError):
            await coordinator.fetch("id-1", "one-too-many")

    @pytest.mark.asyncio
    async def test_reset_unknown(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.admin(AdminCommand.RESET, "missing")

    @pytest.mark.asyncio
    async def test_reset_requires_argument(self, coordinator):
        with pytest.raises(InvalidRequestError):
            await coordinator.admin(AdminCommand.RESET, None)

    @pytest.mark.asyncio
    async def test_revoke_removes_entry_and_blob(self, registry, blob_store, coordinator):
        registry.insert("id-1", 2)
        await coordinator.push("id-1", b"data")

        result = await coordinator.admin(AdminCommand.REVOKE, "id-1")
        assert result.changed is True
        assert registry.lookup("id-1") is None
        assert blob_store.get("id-1") is None

        with pytest.raises(NotFoundError):
            await coordinator.fetch("id-1", "t")

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, coordinator):
        result = await coordinator.admin(AdminCommand.REVOKE, "never-existed")
        assert result.changed is False
        assert result.entries == []

    @pytest.mark.asyncio
    async def test_inspect_all(self, registry, coordinator):
        registry.insert("a", 1)
        registry.insert("b", 2)

        for argument in (None, "", "all", "*"):
            result = await coordinator.admin(AdminCommand.INSPECT, argument)
            assert result.entry_id is None
            assert {entry.entry_id for entry in result.entries} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_inspect_unknown(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.admin(AdminCommand.INSPECT, "missing")

    @pytest.mark.asyncio
    async def test_create(self, registry, coordinator):
        result = await coordinator.admin(AdminCommand.CREATE, "chosen-id")
        assert result.entry_id == "chosen-id"
        assert registry.lookup("chosen-id").remaining == 2

        generated = await coordinator.admin(AdminCommand.CREATE)
        assert registry.lookup(generated.entry_id) is not None

        with pytest.raises(AlreadyExistsError):
            await coordinator.admin(AdminCommand.CREATE, "chosen-id")

    @pytest.mark.asyncio
    async def test_inspect_aliases_cannot_be_registered(self, registry, coordinator):
        for reserved in ("all", "ALL", "*"):
            with pytest.raises(InvalidRequestError):
                await coordinator.admin(AdminCommand.CREATE, reserved)
        assert registry.list_entries() == []

    @pytest.mark.asyncio
    async def test_admin_rejects_raw_strings(self, coordinator):
        with pytest.raises(TypeError):
            await coordinator.admin("reset", "id-1")

    @pytest.mark.asyncio
    async def test_purge_exhausted(self, registry, blob_store, coordinator):
        registry.insert("spent", 1)
        registry.insert("live", 2)
        await coordinator.push("spent", b"a")
        await coordinator.push("live", b"b")
        await coordinator.fetch("spent", "t")

        assert await coordinator.purge_exhausted() == 1
        assert blob_store.get("spent") is None
        assert blob_store.get("live") == b"b"
        assert registry.lookup("spent") is not None

    @pytest.mark.asyncio
    async def test_audit_trail_records_tokens_and_outcomes(self, registry, coordinator):
        registry.insert("id-1", 1)
        await coordinator.push("id-1", b"data")
        await coordinator.fetch("id-1", "client-token")
        with pytest.raises(ExhaustedError):
            await coordinator.fetch("id-1", "late-token")

        events = await coordinator.audit_trail("id-1")
        assert [e.action for e in events] == ["fetch", "fetch", "push"]
        assert events[0].outcome == "EXHAUSTED"
        assert events[0].token == "late-token"
        assert events[1].outcome == "ok"
        assert events[1].token == "client-token"
        assert events[1].remaining == 0
        assert events[2].payload_size == 4

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_operation(self, registry, blob_store, audit_log):
        coordinator = AccessCoordinator(registry, blob_store, audit_log=audit_log)
        registry.insert("id-1", 1)

        async def broken_record(*args, **kwargs):
            raise ValueError("audit down")

        audit_log.record = broken_record
        result = await coordinator.push("id-1", b"data")
        assert result.size == 4

    @pytest.mark.asyncio
    async def test_concurrent_fetches_never_double_spend(self, registry, coordinator):
        """M > N concurrent fetches from separate threads yield exactly N successes"""
        budget = 4
        attempts = 16
        registry.insert("hot", budget)
        await coordinator.push("hot", b"payload")

        def attempt(i):
            try:
                return asyncio.run(coordinator.fetch("hot", f"t{i}")).remaining
            except ExhaustedError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(attempts)))

        successes = [r for r in results if r is not None]
        assert len(successes) == budget
        assert sorted(successes) == [0, 1, 2, 3]
        assert registry.lookup("hot").remaining == 0

    @pytest.mark.asyncio
    async def test_concurrent_fetch_and_revoke_are_clean(self, registry, coordinator):
        """Fetches racing a revoke either succeed with the full payload or fail cleanly"""
        registry.insert("contested", 10)
        payload = b"p" * 512
        await coordinator.push("contested", payload)

        def attempt(i):
            if i == 3:
                asyncio.run(coordinator.admin(AdminCommand.REVOKE, "contested"))
                return "revoked"
            try:
                return asyncio.run(coordinator.fetch("contested", f"t{i}")).payload
            except NotFoundError:
                return "not_found"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))

        for result in results:
            assert result in ("revoked", "not_found", payload)
        assert registry.lookup("contested") is None
