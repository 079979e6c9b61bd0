"""
Storage layer for the Larder registry.

This module provides the shared state-management pieces every sub-registry
is built from:
- RegistryDatabase: SQLite file plus the single-writer transaction boundary
- IdentityAllocator: monotonic identities per entity class
- RecordStore: records keyed by identity
- RelationStore: records keyed by (parent_id, member) tuples
- AuthorizationGuard: owner checks before mutation
- ReceiptStore: applied-call receipts for idempotency

Invariants:
    - Nothing is ever deleted
    - Failed operations leave counters, records and relations unchanged
"""

from .database import RegistryDatabase
from .guard import AuthorizationGuard, get_guard
from .identity import IdentityAllocator
from .receipts import Receipt, ReceiptStore
from .records import RecordStore
from .relations import RelationStore
from .results import ErrorCode, OpResult

__all__ = [
    "RegistryDatabase",
    "IdentityAllocator",
    "RecordStore",
    "RelationStore",
    "AuthorizationGuard",
    "get_guard",
    "ReceiptStore",
    "Receipt",
    "ErrorCode",
    "OpResult",
]
