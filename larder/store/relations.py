"""
Composite-key relation storage.

A relation record hangs off a parent entity and is keyed by the tuple
(parent_id, member). The member is whatever the relation needs: a caller
supplied step number, an ingredient identity, or a participant principal.

Invariants:
    - Keys are exactly two elements, parent identity first
    - Re-inserting a key overwrites; it never duplicates
    - Member keys keep their type (step 1 and principal "1" are distinct)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .database import RegistryDatabase

logger = logging.getLogger(__name__)

RelationKey = tuple[int, Any]


def _split_key(key: RelationKey) -> tuple[int, Any]:
    if not isinstance(key, tuple) or len(key) != 2:
        raise ValueError(f"Relation key must be a (parent_id, member) tuple, got {key!r}")
    return key[0], key[1]


class RelationStore:
    """Stores association records keyed by composite tuples."""

    def __init__(self, database: RegistryDatabase) -> None:
        self.database = database

    def get(self, relation: str, key: RelationKey) -> dict[str, Any] | None:
        """Fetch a relation record, or None if the tuple has no record."""
        parent_id, member = _split_key(key)
        with self.database.reader() as conn:
            row = conn.execute(
                """
                SELECT payload_json FROM relations
                WHERE relation = ? AND parent_id = ? AND member_key = ?
                """,
                (relation, parent_id, member),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["payload_json"])

    def put(self, relation: str, key: RelationKey, record: dict[str, Any]) -> None:
        """Insert or overwrite the record stored at a key."""
        parent_id, member = _split_key(key)
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO relations (relation, parent_id, member_key, payload_json)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (relation, parent_id, member_key)
                DO UPDATE SET payload_json = excluded.payload_json
                """,
                (relation, parent_id, member, json.dumps(record)),
            )

        logger.debug(
            "Stored relation",
            extra={"relation": relation, "parent_id": parent_id, "member": member},
        )

    def count(self, relation: str) -> int:
        with self.database.reader() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM relations WHERE relation = ?", (relation,)
            ).fetchone()[0]
