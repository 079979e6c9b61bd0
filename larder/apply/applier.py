"""
Call applier for the preservation registry.

The Applier consumes registry calls from the ledger and applies them to the
registry database. It ensures:
- Idempotent processing (a call is never applied twice)
- Atomic application (the call's writes and its receipt commit together)
- Ordered processing (calls apply in ledger order)

Invariants:
    - Calls are processed in ledger order
    - Idempotency is checked inside the same transaction that applies the call
    - A domain failure (404/403/400) is a successful application with an
      error result; it still gets a receipt
    - Calls that cannot be applied at all are logged, get a failed receipt
      where they carry a key, and don't block processing
    - A key already recorded for a different caller or operation is neither
      applied nor reported as a duplicate

How to change safely:
    - New call fields must be optional in RegistryCall.from_dict
    - Test idempotency with duplicate call injection
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..ledger.base import CallLedger, LedgerSerializationError, StreamPos, StreamRecord
from ..registry import CallContext, PreservationRegistry
from ..store import OpResult, Receipt, ReceiptStore

logger = logging.getLogger(__name__)

KEY_REUSED_ERROR = "idempotency key reused by a different call"


class MalformedCallError(ValueError):
    """Ledger record is not a valid registry call."""

    pass


@dataclass
class RegistryCall:
    """A registry call carried by the ledger.

    Attributes:
        caller: Principal invoking the operation (required)
        operation: Operation name, e.g. "register_technique" (required)
        args: Keyword arguments of the operation
        idempotency_key: Unique key for deduplication (required)
        height: Height supplied by the environment, if any
        ts_ms: Submission timestamp (Unix ms)
        stream_pos: Position in the ledger, once read back from it

    Example:
        {
            "caller": "user:maria",
            "operation": "register_season",
            "args": {"name": "Harvest", "start_month": 9, ...},
            "idempotency_key": "6f1c...",
            "height": null,
            "ts_ms": 1730000000000
        }
    """

    caller: str
    operation: str
    args: dict[str, Any]
    idempotency_key: str
    height: int | None = None
    ts_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    stream_pos: StreamPos | None = None

    @classmethod
    def create(
        cls,
        caller: str,
        operation: str,
        args: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        height: int | None = None,
    ) -> RegistryCall:
        """Build a new call, generating an idempotency key if none is given."""
        return cls(
            caller=caller,
            operation=operation,
            args=args or {},
            idempotency_key=idempotency_key or uuid.uuid4().hex,
            height=height,
        )

    @classmethod
    def from_dict(cls, data: Any, stream_pos: StreamPos | None = None) -> RegistryCall:
        """Create from dictionary representation.

        Raises:
            MalformedCallError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise MalformedCallError(f"Call must be a JSON object, got {type(data).__name__}")

        required = ["caller", "operation", "idempotency_key"]
        missing = [f for f in required if not data.get(f)]
        if missing:
            raise MalformedCallError(f"Missing required fields: {missing}")

        args = data.get("args") or {}
        if not isinstance(args, dict):
            raise MalformedCallError("Call args must be a JSON object")

        height = data.get("height")
        if height is not None and (isinstance(height, bool) or not isinstance(height, int)):
            raise MalformedCallError(f"Call height must be an integer, got {height!r}")

        return cls(
            caller=str(data["caller"]),
            operation=str(data["operation"]),
            args=args,
            idempotency_key=str(data["idempotency_key"]),
            height=height,
            ts_ms=data.get("ts_ms", int(time.time() * 1000)),
            stream_pos=stream_pos,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "caller": self.caller,
            "operation": self.operation,
            "args": self.args,
            "idempotency_key": self.idempotency_key,
            "height": self.height,
            "ts_ms": self.ts_ms,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")


@dataclass
class ApplyResult:
    """Result of applying a registry call.

    Attributes:
        success: Whether the call was applied (domain errors count as applied)
        call: The call, if the record could be decoded
        result: The operation's result
        receipt: Receipt written for the call
        error: Error message if the call could not be applied
        skipped: Whether the call was skipped (already applied)
    """

    success: bool
    call: RegistryCall | None
    result: OpResult | None = None
    receipt: Receipt | None = None
    error: str | None = None
    skipped: bool = False


class Applier:
    """Consumes ledger calls and applies them to the registry.

    The Applier is the processing loop that:
    1. Consumes calls from the ledger
    2. Resolves the call's height
    3. Checks idempotency (skip already-applied calls)
    4. Dispatches the operation and records its receipt
    5. Commits the ledger position

    Thread safety:
        The Applier is designed to run as a single task; it is the only
        writer of a running server.

    Example:
        >>> applier = Applier(ledger, registry)
        >>> await applier.start()  # Runs until stopped
    """

    def __init__(
        self,
        ledger: CallLedger,
        registry: PreservationRegistry,
        receipts: ReceiptStore | None = None,
        topic: str = "larder-calls",
        group_id: str = "larder-applier",
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.database = registry.database
        self.receipts = receipts or ReceiptStore(registry.database)
        self.topic = topic
        self.group_id = group_id

        self._running = False
        self._processed_count = 0
        self._skipped_count = 0
        self._error_count = 0
        self._last_position: StreamPos | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the applier loop.

        This runs until stop() is called, consuming and applying calls.
        """
        if self._running:
            logger.warning("Applier already running")
            return

        self._running = True
        logger.info("Starting applier", extra={"topic": self.topic, "group_id": self.group_id})

        try:
            async for record in self.ledger.subscribe(self.topic, self.group_id):
                if not self._running:
                    break

                result = await self._process_record(record)

                if result.skipped:
                    self._skipped_count += 1
                    logger.debug(
                        "Skipped duplicate call",
                        extra={"idempotency_key": result.call.idempotency_key},
                    )
                elif result.success:
                    self._processed_count += 1
                else:
                    self._error_count += 1
                    logger.warning(
                        "Failed to apply call",
                        extra={"position": str(record.position), "error": result.error},
                    )

                await self.ledger.commit(record, self.group_id)
                self._last_position = record.position

        except asyncio.CancelledError:
            logger.info("Applier cancelled")
        except Exception as e:
            logger.error(f"Applier error: {e}", exc_info=True)
            raise

        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the applier loop after the current call."""
        self._running = False
        logger.info("Stopping applier")

    def _resolve_height(self, call: RegistryCall) -> int:
        """Height for a call: its own, else ledger position, else next after the last receipt.

        A position-based height never falls below the last recorded height, so
        heights keep increasing when a ledger restarts its offsets.
        """
        if call.height is not None:
            return call.height
        next_height = self.receipts.last_height() + 1
        if call.stream_pos is not None:
            return max(call.stream_pos.offset + 1, next_height)
        return next_height

    async def apply_call(self, call: RegistryCall) -> ApplyResult:
        """Apply a single registry call.

        This is the core application logic, separate from the ledger
        consumption loop for testability.

        Returns:
            ApplyResult; domain errors are in result, infrastructure or
            argument failures in error
        """
        stream_pos = str(call.stream_pos) if call.stream_pos else None

        try:
            with self.database.transaction():
                existing = self.receipts.get(call.idempotency_key)
                if existing is not None and not existing.matches(call.caller, call.operation):
                    logger.warning(
                        "Idempotency key reused by a different call",
                        extra={
                            "idempotency_key": call.idempotency_key,
                            "operation": call.operation,
                            "caller": call.caller,
                        },
                    )
                    return ApplyResult(success=False, call=call, error=KEY_REUSED_ERROR)
                if existing is not None:
                    return ApplyResult(
                        success=True,
                        call=call,
                        result=existing.result,
                        receipt=existing,
                        skipped=True,
                    )

                height = self._resolve_height(call)
                ctx = CallContext(caller=call.caller, height=height)
                result = self.registry.dispatch(ctx, call.operation, call.args)
                receipt = self.receipts.record(
                    call.idempotency_key,
                    result.to_dict(),
                    stream_pos,
                    height,
                    caller=call.caller,
                    operation=call.operation,
                )

        except Exception as e:
            logger.error(
                f"Error applying call: {e}",
                exc_info=True,
                extra={"operation": call.operation, "idempotency_key": call.idempotency_key},
            )
            receipt = self._record_failure(
                call.idempotency_key, str(e), stream_pos, call.caller, call.operation
            )
            return ApplyResult(success=False, call=call, receipt=receipt, error=str(e))

        if result.ok:
            logger.debug(
                "Applied call",
                extra={
                    "operation": call.operation,
                    "caller": call.caller,
                    "height": height,
                    "idempotency_key": call.idempotency_key,
                },
            )
        else:
            logger.info(
                "Call rejected",
                extra={
                    "operation": call.operation,
                    "caller": call.caller,
                    "error_code": int(result.error),
                },
            )

        return ApplyResult(success=True, call=call, result=result, receipt=receipt)

    def _record_failure(
        self,
        idempotency_key: str,
        message: str,
        stream_pos: str | None,
        caller: str | None = None,
        operation: str | None = None,
    ) -> Receipt | None:
        """Record a failed receipt so submitters stop waiting; keeps any existing receipt."""
        with self.database.transaction():
            existing = self.receipts.get(idempotency_key)
            if existing is not None:
                return existing
            return self.receipts.record(
                idempotency_key,
                {"failed": message},
                stream_pos,
                caller=caller,
                operation=operation,
            )

    async def _process_record(self, record: StreamRecord) -> ApplyResult:
        """Decode and apply a single ledger record."""
        try:
            data = record.value_json()
        except LedgerSerializationError as e:
            logger.error(f"Undecodable ledger record: {e}", extra={"position": str(record.position)})
            return ApplyResult(success=False, call=None, error=str(e))

        try:
            call = RegistryCall.from_dict(data, record.position)
        except MalformedCallError as e:
            logger.error(f"Malformed ledger call: {e}", extra={"position": str(record.position)})
            receipt = None
            key = data.get("idempotency_key") if isinstance(data, dict) else None
            if isinstance(key, str) and key:
                receipt = self._record_failure(key, str(e), str(record.position))
            return ApplyResult(success=False, call=None, receipt=receipt, error=str(e))

        return await self.apply_call(call)

    def stats(self) -> dict[str, Any]:
        """Get applier statistics."""
        return {
            "running": self._running,
            "processed_count": self._processed_count,
            "skipped_count": self._skipped_count,
            "error_count": self._error_count,
            "last_position": str(self._last_position) if self._last_position else None,
            "topic": self.topic,
            "group_id": self.group_id,
        }
