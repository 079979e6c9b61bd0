"""
Call ledger abstraction.

The ledger carries every mutating registry call in order; the applier
consumes it and applies each call exactly once. Backends:
- InMemoryLedger: for tests and local development
- KafkaLedger: Kafka/Redpanda (imported lazily by create_ledger)
"""

from .base import (
    CallLedger,
    LedgerConnectionError,
    LedgerError,
    LedgerSerializationError,
    LedgerTimeoutError,
    StreamPos,
    StreamRecord,
    create_ledger,
)
from .memory import InMemoryLedger

__all__ = [
    "CallLedger",
    "LedgerConnectionError",
    "LedgerError",
    "LedgerSerializationError",
    "LedgerTimeoutError",
    "StreamPos",
    "StreamRecord",
    "create_ledger",
    "InMemoryLedger",
]
