"""
Unit tests for the in-memory call ledger.

Tests cover:
- Connection lifecycle
- Append ordering and positions
- Subscribe, commit and resume per consumer group
- Testing helpers
"""

import asyncio
import json

import pytest

from larder.config import LedgerBackend, RegistryConfig
from larder.ledger import (
    InMemoryLedger,
    LedgerConnectionError,
    LedgerSerializationError,
    StreamPos,
    create_ledger,
)


async def _take(ledger, topic, group_id, count, start_position=None):
    """Read `count` records from a fresh subscription, then close it."""
    records = []
    subscription = ledger.subscribe(topic, group_id, start_position)
    try:
        async for record in subscription:
            records.append(record)
            if len(records) == count:
                break
    finally:
        await subscription.aclose()
    return records


class TestInMemoryLedger:
    """Tests for InMemoryLedger."""

    @pytest.fixture
    def ledger(self):
        """Create a fresh ledger."""
        return InMemoryLedger(poll_interval=0.05)

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, ledger):
        assert not ledger.is_connected

        await ledger.connect()
        assert ledger.is_connected

        await ledger.close()
        assert not ledger.is_connected

    @pytest.mark.asyncio
    async def test_append_requires_connection(self, ledger):
        with pytest.raises(LedgerConnectionError):
            await ledger.append("calls", "registry", b"{}")

    @pytest.mark.asyncio
    async def test_append_positions(self, ledger):
        """Offsets start at 0 and increase by one."""
        await ledger.connect()

        first = await ledger.append("calls", "registry", b"a")
        second = await ledger.append("calls", "registry", b"b")

        assert (first.offset, second.offset) == (0, 1)
        assert first.partition == second.partition == 0
        assert first.timestamp_ms > 0
        assert str(second) == "calls:0:1"

    @pytest.mark.asyncio
    async def test_subscribe_in_order(self, ledger):
        await ledger.connect()
        for i in range(3):
            await ledger.append("calls", "registry", json.dumps({"n": i}).encode())

        records = await _take(ledger, "calls", "applier", 3)

        assert [r.value_json()["n"] for r in records] == [0, 1, 2]
        assert [r.position.offset for r in records] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_subscriber_wakes_on_append(self, ledger):
        """A waiting subscriber receives records appended later."""
        await ledger.connect()

        async def append_later():
            await asyncio.sleep(0.02)
            await ledger.append("calls", "registry", b"late")

        task = asyncio.create_task(append_later())
        records = await asyncio.wait_for(_take(ledger, "calls", "applier", 1), timeout=2.0)
        await task

        assert records[0].value == b"late"

    @pytest.mark.asyncio
    async def test_commit_resumes_group(self, ledger):
        """A new subscription starts after the group's last commit."""
        await ledger.connect()
        for value in (b"a", b"b", b"c"):
            await ledger.append("calls", "registry", value)

        first = await _take(ledger, "calls", "applier", 2)
        await ledger.commit(first[1], "applier")
        assert ledger.committed_offset("calls", "applier") == 2

        resumed = await _take(ledger, "calls", "applier", 1)
        assert resumed[0].value == b"c"

    @pytest.mark.asyncio
    async def test_groups_are_independent(self, ledger):
        await ledger.connect()
        await ledger.append("calls", "registry", b"a")

        records = await _take(ledger, "calls", "applier", 1)
        await ledger.commit(records[0], "applier")

        other = await _take(ledger, "calls", "auditor", 1)
        assert other[0].value == b"a"
        assert ledger.committed_offset("calls", "auditor") == 0

    @pytest.mark.asyncio
    async def test_start_position(self, ledger):
        await ledger.connect()
        for value in (b"a", b"b", b"c"):
            await ledger.append("calls", "registry", value)

        records = await _take(
            ledger, "calls", "replay", 1, start_position=StreamPos("calls", 0, 0, 0)
        )

        assert records[0].value == b"b"

    @pytest.mark.asyncio
    async def test_headers(self, ledger):
        await ledger.connect()
        await ledger.append("calls", "registry", b"{}", headers={"source": b"http"})

        records = await _take(ledger, "calls", "applier", 1)

        assert records[0].headers == {"source": b"http"}
        assert records[0].key == "registry"

    @pytest.mark.asyncio
    async def test_value_json_rejects_garbage(self, ledger):
        await ledger.connect()
        await ledger.append("calls", "registry", b"\xff not json")

        records = await _take(ledger, "calls", "applier", 1)

        with pytest.raises(LedgerSerializationError):
            records[0].value_json()

    @pytest.mark.asyncio
    async def test_helpers(self, ledger):
        await ledger.connect()
        assert ledger.get_record_count("calls") == 0

        await ledger.append("calls", "registry", b"a")

        assert await ledger.wait_for_records("calls", 1, timeout=0.5)
        assert not await ledger.wait_for_records("calls", 2, timeout=0.1)
        assert [r.value for r in ledger.get_all_records("calls")] == [b"a"]

    @pytest.mark.asyncio
    async def test_health_check(self, ledger):
        assert not await ledger.health_check()

        await ledger.connect()
        assert await ledger.health_check()

    @pytest.mark.asyncio
    async def test_close_clears_data(self, ledger):
        await ledger.connect()
        await ledger.append("calls", "registry", b"a")

        await ledger.close()

        assert ledger.get_record_count("calls") == 0


class TestCreateLedger:
    """Tests for the backend factory."""

    def test_memory_backend(self):
        ledger = create_ledger(RegistryConfig(ledger_backend=LedgerBackend.MEMORY))
        assert isinstance(ledger, InMemoryLedger)
