"""
Unit tests for the registry facade and operation dispatch.
"""

import pytest

from larder.registry import OPERATIONS, CallContext, PreservationRegistry, UnknownOperationError
from larder.store import ErrorCode, RegistryDatabase


class TestOperationTable:
    """Tests for the operation table."""

    def test_every_operation_resolves(self, registry):
        """Each listed operation names a real method."""
        for op in OPERATIONS.values():
            sub_registry = getattr(registry, op.registry)
            assert callable(getattr(sub_registry, op.name))

    def test_reads_and_writes(self):
        assert OPERATIONS["register_technique"].mutating
        assert not OPERATIONS["get_technique"].mutating
        assert not OPERATIONS["get_class_participant"].mutating
        assert len(OPERATIONS) == 29


class TestDispatch:
    """Tests for PreservationRegistry.dispatch and read."""

    def test_dispatch_mutation(self, registry, alice, season_args):
        result = registry.dispatch(alice, "register_season", season_args)

        assert result.value == 1
        assert registry.seasonal.get_season(1).value["added_by"] == alice.caller

    def test_dispatch_read_ignores_context(self, registry, alice, bob, season_args):
        registry.dispatch(alice, "register_season", season_args)

        result = registry.dispatch(bob, "get_season", {"season_id": 1})

        assert result.value["name"] == season_args["name"]

    def test_unknown_operation(self, registry, alice):
        with pytest.raises(UnknownOperationError) as exc_info:
            registry.dispatch(alice, "delete_technique", {"technique_id": 1})
        assert exc_info.value.operation == "delete_technique"

    def test_bad_arguments_raise(self, registry, alice):
        """Argument mismatches are caller bugs, not domain results."""
        with pytest.raises(TypeError):
            registry.dispatch(alice, "register_ingredient", {"name": "Salt"})

    def test_read_rejects_mutations(self, registry, season_args):
        with pytest.raises(UnknownOperationError):
            registry.read("register_season", season_args)

    def test_read(self, registry):
        assert registry.read("get_ingredient", {"ingredient_id": 1}).error == ErrorCode.NOT_FOUND


class TestSharedState:
    """The sub-registries are one unit of state."""

    def test_counters_are_independent_per_entity(self, registry, alice, teacher_args, season_args):
        assert registry.dispatch(alice, "register_teacher", teacher_args).value == 1
        assert registry.dispatch(alice, "register_season", season_args).value == 1
        assert registry.dispatch(alice, "register_teacher", teacher_args).value == 2

    def test_stats(self, registry, alice, technique_args):
        registry.dispatch(alice, "register_technique", technique_args)
        registry.dispatch(
            alice,
            "add_technique_step",
            {
                "technique_id": 1,
                "step_number": 1,
                "description": "Shred",
                "duration_minutes": 10,
                "temperature": "",
                "special_notes": "",
            },
        )

        stats = registry.stats()
        assert stats["technique"] == 1
        assert stats["technique_step"] == 1
        assert stats["teacher"] == 0
        assert len(stats) == 12

    def test_state_survives_reopen(self, data_dir, technique_args):
        """A registry over the same file sees earlier records and counters."""
        path = f"{data_dir}/registry.db"
        ctx = CallContext(caller="user:alice", height=1)

        db = RegistryDatabase(path)
        PreservationRegistry(db).dispatch(ctx, "register_technique", technique_args)
        db.close()

        db = RegistryDatabase(path)
        try:
            registry = PreservationRegistry(db)
            assert registry.techniques.get_technique(1).ok
            assert registry.dispatch(ctx, "register_technique", technique_args).value == 2
        finally:
            db.close()
