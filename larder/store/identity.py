"""
Monotonic identity allocation per entity class.

Invariants:
    - Counters start at 0; the first identity issued is 1
    - Identities are strictly increasing and never reused
    - A rolled-back transaction also rolls back its allocation
"""

from __future__ import annotations

import logging

from .database import RegistryDatabase

logger = logging.getLogger(__name__)


class IdentityAllocator:
    """Issues the next integer identity for an entity class.

    Allocation runs inside the caller's transaction, so an operation that
    fails after allocating leaves the counter untouched.
    """

    def __init__(self, database: RegistryDatabase) -> None:
        self.database = database

    def next_id(self, entity: str) -> int:
        """Allocate and persist the next identity for an entity class.

        Args:
            entity: Entity class name (e.g. "technique")

        Returns:
            The newly issued identity
        """
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT last_id FROM id_counters WHERE entity = ?",
                (entity,),
            ).fetchone()
            new_id = (row["last_id"] if row else 0) + 1
            conn.execute(
                """
                INSERT INTO id_counters (entity, last_id) VALUES (?, ?)
                ON CONFLICT (entity) DO UPDATE SET last_id = excluded.last_id
                """,
                (entity, new_id),
            )

        logger.debug("Allocated identity", extra={"entity": entity, "id": new_id})
        return new_id

    def peek(self, entity: str) -> int:
        """Return the last issued identity (0 if none) without allocating."""
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT last_id FROM id_counters WHERE entity = ?",
                (entity,),
            ).fetchone()
        return row["last_id"] if row else 0
