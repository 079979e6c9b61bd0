"""
Registry service implementation shared by the HTTP layer.

The servicer coordinates between the call ledger (for writes) and the
registry database (for reads and receipts).

Invariants:
    - Mutating operations only ever reach the registry through the ledger
    - Reads go straight to the store and never take a caller
    - Every submitted call carries an idempotency key (generated if absent)
    - A key whose receipt names another caller or operation is refused, never
      answered with that receipt

How to change safely:
    - Keep response dictionaries backward compatible; the HTTP layer
      serializes them as-is
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ..apply import KEY_REUSED_ERROR, Applier, RegistryCall
from ..ledger import CallLedger, LedgerError
from ..registry import OPERATIONS, PreservationRegistry
from ..store import OpResult, Receipt, ReceiptStore

logger = logging.getLogger(__name__)

PARTITION_KEY = "registry"

STATUS_APPLIED = "applied"
STATUS_PENDING = "pending"


def _key_reused(idempotency_key: str) -> dict[str, Any]:
    return {
        "success": False,
        "idempotency_key": idempotency_key,
        "error": KEY_REUSED_ERROR,
        "error_code": "IDEMPOTENCY_KEY_REUSED",
    }


class RegistryServicer:
    """Service methods behind the HTTP API.

    Attributes:
        ledger: Call ledger submitted calls are appended to
        registry: Registry read operations are served from
        receipts: Receipt store polled for applied calls
        applier: Applier whose stats are reported by health()
    """

    def __init__(
        self,
        ledger: CallLedger,
        registry: PreservationRegistry,
        applier: Applier | None = None,
        topic: str = "larder-calls",
        receipt_timeout_ms: int = 10000,
        receipt_poll_ms: int = 50,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.receipts = ReceiptStore(registry.database)
        self.applier = applier
        self.topic = topic
        self.receipt_timeout_ms = receipt_timeout_ms
        self.receipt_poll_ms = receipt_poll_ms

    async def submit(
        self,
        caller: str,
        operation: str,
        args: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        wait_applied: bool = False,
    ) -> dict[str, Any]:
        """Append a mutating call to the ledger.

        Args:
            caller: Principal invoking the operation
            operation: Mutating operation name
            args: Operation keyword arguments
            idempotency_key: Optional idempotency key
            wait_applied: Whether to wait for the applier's receipt

        Returns:
            Response dictionary with status, receipt or error
        """
        if not caller:
            return {"success": False, "error": "caller is required", "error_code": "INVALID_ARGUMENT"}

        op = OPERATIONS.get(operation)
        if op is None or not op.mutating:
            return {
                "success": False,
                "error": f"Unknown operation: {operation}",
                "error_code": "UNKNOWN_OPERATION",
            }

        if idempotency_key:
            existing = self.receipts.get(idempotency_key)
            if existing is not None and not existing.matches(caller, operation):
                return _key_reused(idempotency_key)

        call = RegistryCall.create(caller, operation, args, idempotency_key)

        try:
            stream_pos = await self.ledger.append(self.topic, PARTITION_KEY, call.to_bytes())
        except LedgerError as e:
            logger.error(f"Submit failed: {e}", exc_info=True)
            return {"success": False, "error": str(e), "error_code": "LEDGER_UNAVAILABLE"}

        logger.debug(
            "Call submitted",
            extra={
                "operation": operation,
                "caller": caller,
                "idempotency_key": call.idempotency_key,
                "position": str(stream_pos),
            },
        )

        response: dict[str, Any] = {
            "success": True,
            "idempotency_key": call.idempotency_key,
            "stream_position": str(stream_pos),
            "status": STATUS_PENDING,
        }
        if wait_applied:
            receipt = await self._wait_for_receipt(call.idempotency_key)
            if receipt is not None and not receipt.matches(caller, operation):
                return _key_reused(call.idempotency_key)
            if receipt is not None:
                response.update({"status": STATUS_APPLIED, "receipt": receipt.to_dict()})
        return response

    async def _wait_for_receipt(self, idempotency_key: str) -> Receipt | None:
        """Poll receipts until the call is applied or the wait times out."""
        deadline = time.monotonic() + self.receipt_timeout_ms / 1000.0
        while time.monotonic() < deadline:
            receipt = self.receipts.get(idempotency_key)
            if receipt is not None:
                return receipt
            await asyncio.sleep(self.receipt_poll_ms / 1000.0)
        return None

    async def get_receipt(self, idempotency_key: str) -> dict[str, Any]:
        """Status of a submitted call."""
        receipt = self.receipts.get(idempotency_key)
        if receipt is None:
            return {"idempotency_key": idempotency_key, "status": STATUS_PENDING}
        return {
            "idempotency_key": idempotency_key,
            "status": STATUS_APPLIED,
            "receipt": receipt.to_dict(),
        }

    async def read(self, operation: str, **args: Any) -> OpResult:
        """Run a read operation.

        Raises:
            UnknownOperationError: If operation is not a read operation
        """
        return self.registry.read(operation, args)

    async def health(self) -> dict[str, Any]:
        """Get server health status."""
        ledger_ok = await self.ledger.health_check()
        components = {"ledger": "healthy" if ledger_ok else "unhealthy"}
        if self.applier is not None:
            components["applier"] = "healthy" if self.applier.is_running else "stopped"

        return {
            "healthy": all(v == "healthy" for v in components.values()),
            "components": components,
            "applier": self.applier.stats() if self.applier is not None else None,
            "receipts": self.receipts.count(),
            "records": self.registry.stats(),
        }

