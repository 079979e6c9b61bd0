"""
Ownership checks for registry mutations.

Every owned record names the identity allowed to mutate it (owner, author,
added_by or created_by depending on the entity). The guard compares that
identity with the caller.

Invariants:
    - Comparison is exact string equality, no roles or wildcards
    - The guard only decides; it never reads or writes the store
    - Callers check existence first, then call authorize()
"""

from __future__ import annotations

import logging
from typing import Protocol

from .results import PERMISSION_DENIED, OpResult

logger = logging.getLogger(__name__)


class OwnedRecord(Protocol):
    """Anything that names the identity allowed to mutate it."""

    @property
    def owner_actor(self) -> str | None: ...


class AuthorizationGuard:
    """Checks a caller against a record's owner field.

    Thread safety:
        This class is stateless and thread-safe.

    Example:
        >>> guard = AuthorizationGuard()
        >>> guard.authorize(technique, "user:alice").ok
        True
    """

    def is_owner(self, record: OwnedRecord, caller: str) -> bool:
        owner = record.owner_actor
        return owner is not None and owner == caller

    def authorize(self, record: OwnedRecord, caller: str) -> OpResult:
        """Check that the caller owns the record.

        Args:
            record: Record about to be mutated (or used as a parent)
            caller: Identity submitting the call

        Returns:
            Success carrying the record, or a PermissionDenied result
        """
        if self.is_owner(record, caller):
            return OpResult.success(record)

        logger.info(
            "Permission denied",
            extra={
                "record_type": type(record).__name__,
                "owner": record.owner_actor,
                "caller": caller,
            },
        )
        return PERMISSION_DENIED


_default_guard: AuthorizationGuard | None = None


def get_guard() -> AuthorizationGuard:
    """Get the default guard instance."""
    global _default_guard
    if _default_guard is None:
        _default_guard = AuthorizationGuard()
    return _default_guard
