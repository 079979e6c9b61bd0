"""
Receipts for applied ledger calls.

Each ledger call is applied at most once. The receipt records where in the
ledger the call sat, the height it was applied at, and its outcome, so a
submitter can learn the result of a call it appended.

Invariants:
    - One receipt per idempotency key
    - A receipt names the caller and operation it was recorded for; a key
      reused by a different call does not match it
    - A receipt exists only once the call's effects (if any) are committed
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from .database import RegistryDatabase
from .results import OpResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    """Outcome of an applied call.

    Attributes:
        idempotency_key: Key the call was submitted with
        stream_pos: Ledger position string, if the call came from the ledger
        height: Height the call was applied at
        outcome: {"value": ...}, {"error": code} or {"failed": message}
        applied_at: Application time (Unix ms)
        caller: Caller of the applied call, if known
        operation: Operation of the applied call, if known
    """

    idempotency_key: str
    stream_pos: str | None
    height: int | None
    outcome: dict[str, Any]
    applied_at: int
    caller: str | None = None
    operation: str | None = None

    @property
    def result(self) -> OpResult | None:
        """The domain result, or None if the call could not be applied."""
        if "failed" in self.outcome:
            return None
        return OpResult.from_dict(self.outcome)

    def matches(self, caller: str, operation: str) -> bool:
        """Whether this receipt belongs to a call by caller of operation."""
        return self.caller == caller and self.operation == operation

    def to_dict(self) -> dict[str, Any]:
        return {
            "idempotency_key": self.idempotency_key,
            "stream_pos": self.stream_pos,
            "height": self.height,
            "outcome": self.outcome,
            "applied_at": self.applied_at,
            "caller": self.caller,
            "operation": self.operation,
        }


class ReceiptStore:
    """Applied-call bookkeeping in the registry database."""

    def __init__(self, database: RegistryDatabase) -> None:
        self.database = database

    def get(self, idempotency_key: str) -> Receipt | None:
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT * FROM applied_calls WHERE idempotency_key = ?",
                (idempotency_key,),
            ).fetchone()
        if row is None:
            return None
        return Receipt(
            idempotency_key=row["idempotency_key"],
            stream_pos=row["stream_pos"],
            height=row["height"],
            outcome=json.loads(row["outcome_json"]),
            applied_at=row["applied_at"],
            caller=row["caller"],
            operation=row["operation"],
        )

    def record(
        self,
        idempotency_key: str,
        outcome: dict[str, Any],
        stream_pos: str | None = None,
        height: int | None = None,
        caller: str | None = None,
        operation: str | None = None,
    ) -> Receipt:
        """Record that a call has been applied.

        Args:
            idempotency_key: Call idempotency key
            outcome: Serialized result or failure description
            stream_pos: Ledger position string
            height: Height the call was applied at
            caller: Caller of the call
            operation: Operation of the call

        Returns:
            The stored receipt
        """
        applied_at = int(time.time() * 1000)
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO applied_calls
                    (idempotency_key, caller, operation, stream_pos, height, outcome_json, applied_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    idempotency_key,
                    caller,
                    operation,
                    stream_pos,
                    height,
                    json.dumps(outcome),
                    applied_at,
                ),
            )
        return Receipt(idempotency_key, stream_pos, height, outcome, applied_at, caller, operation)

    def last_height(self) -> int:
        """Highest height recorded so far (0 when nothing was applied)."""
        with self.database.reader() as conn:
            row = conn.execute("SELECT MAX(height) FROM applied_calls").fetchone()
        return row[0] or 0

    def count(self) -> int:
        with self.database.reader() as conn:
            return conn.execute("SELECT COUNT(*) FROM applied_calls").fetchone()[0]
