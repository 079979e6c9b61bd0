"""
Primary-key record storage.

RecordStore keeps one record per allocated identity, keyed by
(entity, record_id). Records are plain JSON-serializable mappings; typing
them is the registries' job.

Invariants:
    - get() on an absent identity returns None, it never raises
    - put() is an unconditional upsert; callers authorize beforehand
    - There is no delete
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .database import RegistryDatabase

logger = logging.getLogger(__name__)


class RecordStore:
    """Stores records keyed by entity class and identity."""

    def __init__(self, database: RegistryDatabase) -> None:
        self.database = database

    def get(self, entity: str, record_id: int) -> dict[str, Any] | None:
        """Fetch a record.

        Args:
            entity: Entity class name
            record_id: Identity issued by the allocator

        Returns:
            The stored record, or None if absent
        """
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT payload_json FROM records WHERE entity = ? AND record_id = ?",
                (entity, record_id),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["payload_json"])

    def put(self, entity: str, record_id: int, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO records (entity, record_id, payload_json) VALUES (?, ?, ?)
                ON CONFLICT (entity, record_id) DO UPDATE SET payload_json = excluded.payload_json
                """,
                (entity, record_id, json.dumps(record)),
            )

        logger.debug("Stored record", extra={"entity": entity, "record_id": record_id})

    def count(self, entity: str) -> int:
        with self.database.reader() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM records WHERE entity = ?", (entity,)
            ).fetchone()[0]
