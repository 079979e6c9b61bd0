"""
Integration tests for the Applier with the in-memory ledger.

Tests cover:
- Applying calls and recording receipts
- Idempotency
- Height resolution
- Failure handling (bad arguments, unknown operations, malformed records)
- The consumption loop end to end
"""

import asyncio
import json

import pytest

from larder.apply import KEY_REUSED_ERROR, Applier, MalformedCallError, RegistryCall
from larder.ledger import InMemoryLedger, StreamPos
from larder.registry import PreservationRegistry
from larder.store import ErrorCode, ReceiptStore, RegistryDatabase

TOPIC = "larder-calls"


async def _wait_for_receipt(receipts, key, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        receipt = receipts.get(key)
        if receipt is not None:
            return receipt
        await asyncio.sleep(0.01)
    return None


class TestRegistryCall:
    """Tests for ledger call decoding."""

    def test_round_trip(self):
        call = RegistryCall.create("user:alice", "get_season", {"season_id": 1}, "k1")

        decoded = RegistryCall.from_dict(json.loads(call.to_bytes()))

        assert decoded.caller == "user:alice"
        assert decoded.args == {"season_id": 1}
        assert decoded.idempotency_key == "k1"
        assert decoded.height is None

    def test_generated_key(self):
        first = RegistryCall.create("user:alice", "register_season")
        second = RegistryCall.create("user:alice", "register_season")

        assert first.idempotency_key and first.idempotency_key != second.idempotency_key

    @pytest.mark.parametrize(
        "data",
        [
            {"operation": "register_season", "idempotency_key": "k"},
            {"caller": "user:alice", "idempotency_key": "k"},
            {"caller": "user:alice", "operation": "register_season"},
            {"caller": "user:alice", "operation": "x", "idempotency_key": "k", "args": [1]},
            {"caller": "user:alice", "operation": "x", "idempotency_key": "k", "height": "10"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(MalformedCallError):
            RegistryCall.from_dict(data)


class TestApplierIntegration:
    """Integration tests for Applier."""

    @pytest.fixture
    def ledger(self):
        return InMemoryLedger(poll_interval=0.05)

    @pytest.fixture
    def registry(self, database):
        return PreservationRegistry(database)

    @pytest.fixture
    def receipts(self, database):
        return ReceiptStore(database)

    @pytest.fixture
    async def applier(self, ledger, registry):
        """Create applier over a connected ledger."""
        applier = Applier(ledger=ledger, registry=registry, topic=TOPIC, group_id="applier")
        await ledger.connect()
        yield applier
        await ledger.close()

    @pytest.mark.asyncio
    async def test_apply_records_receipt(self, applier, registry, season_args):
        call = RegistryCall.create("user:alice", "register_season", season_args, "season-1", height=50)

        result = await applier.apply_call(call)

        assert result.success and not result.skipped
        assert result.result.value == 1
        assert result.receipt.outcome == {"value": 1}
        assert result.receipt.height == 50
        assert registry.seasonal.get_season(1).value["added_at"] == 50

    @pytest.mark.asyncio
    async def test_idempotent_processing(self, applier, registry, season_args):
        """The same call applied twice only takes effect once."""
        call = RegistryCall.create("user:alice", "register_season", season_args, "once", height=1)

        first = await applier.apply_call(call)
        second = await applier.apply_call(call)

        assert not first.skipped
        assert second.skipped
        assert second.result.value == 1
        assert registry.stats()["season"] == 1

    @pytest.mark.asyncio
    async def test_domain_error_is_applied(self, applier, technique_args):
        """A denied call is a successful application with an error result."""
        await applier.apply_call(
            RegistryCall.create("user:alice", "register_technique", technique_args, "t1", height=1)
        )

        result = await applier.apply_call(
            RegistryCall.create(
                "user:bob",
                "update_technique",
                {
                    "technique_id": 1,
                    "description": "x",
                    "equipment_needed": "y",
                    "difficulty_level": "z",
                },
                "t2",
                height=2,
            )
        )

        assert result.success
        assert result.result.error == ErrorCode.PERMISSION_DENIED
        assert result.receipt.outcome == {"error": 403}

    @pytest.mark.asyncio
    async def test_bad_arguments_fail_without_writes(self, applier, registry):
        """Missing arguments fail the call, leave no records and get a failed receipt."""
        result = await applier.apply_call(
            RegistryCall.create("user:alice", "register_ingredient", {"name": "Salt"}, "bad", height=1)
        )

        assert not result.success
        assert "failed" in result.receipt.outcome
        assert registry.stats()["ingredient"] == 0
        assert applier.receipts.get("bad").result is None

    @pytest.mark.asyncio
    async def test_unknown_operation_fails(self, applier):
        result = await applier.apply_call(
            RegistryCall.create("user:alice", "drop_registry", {}, "drop", height=1)
        )

        assert not result.success
        assert "drop_registry" in result.error

    @pytest.mark.asyncio
    async def test_height_from_ledger_position(self, applier, registry, season_args):
        """Without an explicit height the ledger offset supplies it."""
        call = RegistryCall.create("user:alice", "register_season", season_args, "pos")
        call.stream_pos = StreamPos(TOPIC, 0, 41, 0)

        result = await applier.apply_call(call)

        assert result.receipt.height == 42
        assert registry.seasonal.get_season(1).value["added_at"] == 42

    @pytest.mark.asyncio
    async def test_reused_key_from_other_call(
        self, applier, registry, receipts, season_args, technique_args
    ):
        """A key already used by another caller or operation is refused, not skipped."""
        await applier.apply_call(
            RegistryCall.create("user:alice", "register_season", season_args, "k", height=1)
        )

        other_caller = await applier.apply_call(
            RegistryCall.create("user:bob", "register_season", season_args, "k", height=2)
        )
        other_operation = await applier.apply_call(
            RegistryCall.create("user:alice", "register_technique", technique_args, "k", height=3)
        )

        for result in (other_caller, other_operation):
            assert not result.success
            assert not result.skipped
            assert result.error == KEY_REUSED_ERROR
        assert registry.stats()["season"] == 1
        assert registry.stats()["technique"] == 0
        receipt = receipts.get("k")
        assert receipt.caller == "user:alice"
        assert receipt.operation == "register_season"
        assert receipt.outcome == {"value": 1}

    @pytest.mark.asyncio
    async def test_height_from_last_receipt(self, applier, registry, season_args):
        """With neither height nor position, height follows the last receipt."""
        await applier.apply_call(
            RegistryCall.create("user:alice", "register_season", season_args, "a", height=10)
        )

        result = await applier.apply_call(
            RegistryCall.create("user:alice", "register_season", season_args, "b")
        )

        assert result.receipt.height == 11

    @pytest.mark.asyncio
    async def test_consumption_loop(self, applier, ledger, receipts, registry, teacher_args, class_args):
        """Calls appended to the ledger are applied in order."""
        calls = [
            RegistryCall.create("user:alice", "register_teacher", teacher_args, "c1"),
            RegistryCall.create(
                "user:alice", "create_class", {"teacher_id": 1, **class_args}, "c2"
            ),
            RegistryCall.create("user:bob", "register_for_class", {"class_id": 1, "notes": ""}, "c3"),
            RegistryCall.create(
                "user:alice", "update_class_status", {"class_id": 1, "status": "full"}, "c4"
            ),
            RegistryCall.create(
                "user:carol", "register_for_class", {"class_id": 1, "notes": ""}, "c5"
            ),
        ]
        for call in calls:
            await ledger.append(TOPIC, "registry", call.to_bytes())

        task = asyncio.create_task(applier.start())
        try:
            last = await _wait_for_receipt(receipts, "c5")
        finally:
            await applier.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert last is not None
        assert last.outcome == {"error": 400}
        assert receipts.get("c3").outcome == {"value": {"class_id": 1, "participant": "user:bob"}}
        assert [receipts.get(f"c{i}").height for i in range(1, 6)] == [1, 2, 3, 4, 5]
        assert registry.knowledge.get_class(1).value["status"] == "full"
        assert ledger.committed_offset(TOPIC, "applier") >= 4
        assert applier.stats()["processed_count"] == 5

    @pytest.mark.asyncio
    async def test_loop_survives_malformed_records(self, applier, ledger, receipts, season_args):
        """Garbage and malformed calls are skipped; later calls still apply."""
        await ledger.append(TOPIC, "registry", b"\x00garbage")
        await ledger.append(
            TOPIC, "registry", json.dumps({"operation": "x", "idempotency_key": "nocaller"}).encode()
        )
        good = RegistryCall.create("user:alice", "register_season", season_args, "good")
        await ledger.append(TOPIC, "registry", good.to_bytes())

        task = asyncio.create_task(applier.start())
        try:
            receipt = await _wait_for_receipt(receipts, "good")
        finally:
            await applier.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert receipt.outcome == {"value": 1}
        assert "failed" in receipts.get("nocaller").outcome
        assert applier.stats()["error_count"] == 2


class TestApplierRestart:
    """Receipts persist, so a restarted applier does not re-apply calls."""

    @pytest.mark.asyncio
    async def test_replay_after_restart(self, data_dir, season_args):
        path = f"{data_dir}/registry.db"
        call = RegistryCall.create("user:alice", "register_season", season_args, "replayed", height=3)
        ledger = InMemoryLedger()
        await ledger.connect()

        db = RegistryDatabase(path)
        await Applier(ledger, PreservationRegistry(db)).apply_call(call)
        db.close()

        db = RegistryDatabase(path)
        try:
            registry = PreservationRegistry(db)
            result = await Applier(ledger, registry).apply_call(call)
            assert result.skipped
            assert registry.stats()["season"] == 1
        finally:
            db.close()
            await ledger.close()

    @pytest.mark.asyncio
    async def test_heights_increase_across_ledger_restarts(self, data_dir, season_args):
        """A fresh ledger restarts its offsets; heights still move forward."""
        path = f"{data_dir}/registry.db"
        heights = []

        for round_number in range(2):
            ledger = InMemoryLedger()
            await ledger.connect()
            db = RegistryDatabase(path)
            try:
                call = RegistryCall.create(
                    "user:alice", "register_season", season_args, f"round-{round_number}"
                )
                call.stream_pos = await ledger.append(TOPIC, "registry", call.to_bytes())
                assert call.stream_pos.offset == 0

                result = await Applier(ledger, PreservationRegistry(db)).apply_call(call)
                heights.append(result.receipt.height)
            finally:
                db.close()
                await ledger.close()

        assert heights == [1, 2]
