"""
Shared state-management pattern for the sub-registries.

Every sub-registry is built from the same pieces: an identity allocator,
a record store, a relation store and the authorization guard, all sharing
one RegistryDatabase. This module wires them together and provides the
lookup/insert/authorize helpers the concrete registries compose.

Invariants:
    - Precedence of checks is existence, then ownership, then state
    - Identities are allocated only after every precondition passed
    - Each public operation runs inside one database transaction
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TypeVar

from ..store import (
    AuthorizationGuard,
    IdentityAllocator,
    OpResult,
    RecordStore,
    RegistryDatabase,
    RelationStore,
    get_guard,
)
from ..store.relations import RelationKey
from ..store.results import NOT_FOUND
from .types import StoredRecord

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=StoredRecord)


@dataclass(frozen=True)
class CallContext:
    """Explicit authorization context of a call.

    Attributes:
        caller: Identity submitting the call
        height: Current height supplied by the execution environment
    """

    caller: str
    height: int


class BaseRegistry:
    """Base class for registries over the shared stores."""

    def __init__(
        self,
        database: RegistryDatabase,
        allocator: IdentityAllocator | None = None,
        records: RecordStore | None = None,
        relations: RelationStore | None = None,
        guard: AuthorizationGuard | None = None,
    ) -> None:
        self.database = database
        self.allocator = allocator or IdentityAllocator(database)
        self.records = records or RecordStore(database)
        self.relations = relations or RelationStore(database)
        self.guard = guard or get_guard()

    def _lookup(self, record_type: type[R], record_id: int) -> R | None:
        data = self.records.get(record_type.KIND, record_id)
        if data is None:
            return None
        return record_type.from_dict(data)

    def _load_owned(self, record_type: type[R], record_id: int, caller: str) -> OpResult:
        """Resolve a record and check that the caller owns it.

        Returns:
            Success carrying the record, NotFound or PermissionDenied
        """
        record = self._lookup(record_type, record_id)
        if record is None:
            return NOT_FOUND
        return self.guard.authorize(record, caller)

    def _insert(self, record: StoredRecord) -> int:
        """Allocate an identity and store a new record under it."""
        with self.database.transaction():
            record_id = self.allocator.next_id(record.KIND)
            self.records.put(record.KIND, record_id, record.to_dict())
        logger.debug("Created record", extra={"kind": record.KIND, "record_id": record_id})
        return record_id

    def _replace(self, record_id: int, record: StoredRecord) -> None:
        self.records.put(record.KIND, record_id, record.to_dict())

    def _read(self, record_type: type[StoredRecord], record_id: int) -> OpResult:
        data = self.records.get(record_type.KIND, record_id)
        if data is None:
            return NOT_FOUND
        return OpResult.success(data)

    def _read_relation(self, record_type: type[StoredRecord], key: RelationKey) -> OpResult:
        data = self.relations.get(record_type.KIND, key)
        if data is None:
            return NOT_FOUND
        return OpResult.success(data)

    def count(self, record_type: type[StoredRecord]) -> int:
        """Number of stored records of a type (entity or relation)."""
        if record_type.RELATION:
            return self.relations.count(record_type.KIND)
        return self.records.count(record_type.KIND)

    def last_id(self, record_type: type[StoredRecord]) -> int:
        return self.allocator.peek(record_type.KIND)

