"""
Registry facade and operation dispatch.

PreservationRegistry bundles the three sub-registries over one database and
exposes every operation by name, which is how ledger calls and HTTP
requests reach them.

Invariants:
    - Mutating operations receive the CallContext; reads never do
    - Unknown operation names raise UnknownOperationError, they are not
      domain results
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..store import (
    AuthorizationGuard,
    IdentityAllocator,
    OpResult,
    RecordStore,
    RegistryDatabase,
    RelationStore,
    get_guard,
)
from .base import CallContext
from .knowledge import KnowledgeRegistry
from .seasonal import SeasonalRegistry
from .techniques import TechniqueRegistry
from .types import (
    Certification,
    ClassParticipant,
    EducationalResource,
    Ingredient,
    PreservationClass,
    PreservationSchedule,
    ScheduledEvent,
    Season,
    Teacher,
    Technique,
    TechniqueIngredient,
    TechniqueStep,
)

logger = logging.getLogger(__name__)

RECORD_TYPES = (
    Teacher,
    PreservationClass,
    ClassParticipant,
    Certification,
    EducationalResource,
    Season,
    PreservationSchedule,
    ScheduledEvent,
    Technique,
    TechniqueStep,
    Ingredient,
    TechniqueIngredient,
)


class UnknownOperationError(ValueError):
    """Operation name is not part of the registry surface."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Unknown operation: {operation}")


@dataclass(frozen=True)
class Operation:
    """Where an operation lives and whether it mutates.

    Attributes:
        name: Public operation name
        registry: Attribute of PreservationRegistry holding the sub-registry
        mutating: Whether the operation takes a CallContext
    """

    name: str
    registry: str
    mutating: bool


def _ops(registry: str, mutating: bool, *names: str) -> dict[str, Operation]:
    return {name: Operation(name, registry, mutating) for name in names}


OPERATIONS: dict[str, Operation] = {
    **_ops(
        "knowledge",
        True,
        "register_teacher",
        "update_teacher",
        "create_class",
        "update_class_status",
        "register_for_class",
        "issue_certification",
        "add_educational_resource",
    ),
    **_ops(
        "knowledge",
        False,
        "get_teacher",
        "get_class",
        "get_class_participant",
        "get_certification",
        "get_educational_resource",
    ),
    **_ops(
        "seasonal",
        True,
        "register_season",
        "update_season",
        "create_schedule",
        "create_event",
        "update_event_status",
    ),
    **_ops("seasonal", False, "get_season", "get_schedule", "get_event"),
    **_ops(
        "techniques",
        True,
        "register_technique",
        "update_technique",
        "add_technique_step",
        "register_ingredient",
        "add_technique_ingredient",
    ),
    **_ops(
        "techniques",
        False,
        "get_technique",
        "get_technique_step",
        "get_ingredient",
        "get_technique_ingredient",
    ),
}


class PreservationRegistry:
    """All sub-registries over one database.

    The sub-registries share one allocator, record store, relation store and
    guard, so the whole registry is one unit of state.

    Example:
        >>> registry = PreservationRegistry(RegistryDatabase(":memory:"))
        >>> ctx = CallContext(caller="user:maria", height=100)
        >>> registry.dispatch(ctx, "register_ingredient",
        ...                   {"name": "Cabbage", "category": "Vegetable", "description": ""})
        OpResult(value=1, error=None)
    """

    def __init__(
        self,
        database: RegistryDatabase,
        guard: AuthorizationGuard | None = None,
    ) -> None:
        self.database = database
        allocator = IdentityAllocator(database)
        records = RecordStore(database)
        relations = RelationStore(database)
        guard = guard or get_guard()

        shared = dict(allocator=allocator, records=records, relations=relations, guard=guard)
        self.knowledge = KnowledgeRegistry(database, **shared)
        self.seasonal = SeasonalRegistry(database, **shared)
        self.techniques = TechniqueRegistry(database, **shared)

    def _resolve(self, operation: str) -> tuple[Operation, Any]:
        op = OPERATIONS.get(operation)
        if op is None:
            raise UnknownOperationError(operation)
        return op, getattr(getattr(self, op.registry), op.name)

    def dispatch(self, ctx: CallContext, operation: str, args: dict[str, Any]) -> OpResult:
        """Run an operation by name.

        Args:
            ctx: Caller identity and height (ignored by reads)
            operation: Operation name, e.g. "register_technique"
            args: Keyword arguments of the operation

        Returns:
            The operation's result

        Raises:
            UnknownOperationError: If the name is not an operation
            TypeError: If args do not match the operation's parameters
        """
        op, handler = self._resolve(operation)
        if op.mutating:
            return handler(ctx, **args)
        return handler(**args)

    def read(self, operation: str, args: dict[str, Any]) -> OpResult:
        """Run a read operation by name; mutating names are rejected."""
        op, handler = self._resolve(operation)
        if op.mutating:
            raise UnknownOperationError(operation)
        return handler(**args)

    def stats(self) -> dict[str, int]:
        """Stored record counts per entity and relation kind."""
        return {
            record_type.KIND: self.knowledge.count(record_type) for record_type in RECORD_TYPES
        }
