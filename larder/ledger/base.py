"""
Base protocol and types for the call ledger.

The ledger is the ordered, serialized stream of registry calls supplied by
the execution environment. This module defines the CallLedger protocol every
backend implements, along with stream positions, records and errors.

Invariants:
    - StreamPos uniquely identifies a position in the ledger
    - Records with the same key are delivered in append order
    - A consumer group resumes after its last committed record

How to change safely:
    - Protocol changes require updating every backend
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import RegistryConfig

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for ledger operations."""

    pass


class LedgerConnectionError(LedgerError):
    """Connection to the ledger backend failed."""

    pass


class LedgerTimeoutError(LedgerError):
    """Ledger operation timed out."""

    pass


class LedgerSerializationError(LedgerError):
    """Failed to decode a ledger record."""

    pass


@dataclass(frozen=True)
class StreamPos:
    """Position in the ledger.

    Attributes:
        topic: Topic name
        partition: Partition number
        offset: Offset within the partition, starting at 0
        timestamp_ms: Time the record was appended (milliseconds)
    """

    topic: str
    partition: int
    offset: int
    timestamp_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "partition": self.partition,
            "offset": self.offset,
            "timestamp_ms": self.timestamp_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamPos:
        return cls(
            topic=data["topic"],
            partition=data["partition"],
            offset=data["offset"],
            timestamp_ms=data["timestamp_ms"],
        )

    def __str__(self) -> str:
        return f"{self.topic}:{self.partition}:{self.offset}"


@dataclass
class StreamRecord:
    """A record read from the ledger.

    Attributes:
        key: Partition key
        value: Call payload (JSON bytes)
        position: Position in the ledger
        headers: Optional headers/metadata
    """

    key: str
    value: bytes
    position: StreamPos
    headers: dict[str, bytes] = field(default_factory=dict)

    def value_json(self) -> Any:
        """Parse value as JSON.

        Raises:
            LedgerSerializationError: If value is not valid JSON
        """
        try:
            return json.loads(self.value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise LedgerSerializationError(f"Failed to parse record value as JSON: {e}")

    def __str__(self) -> str:
        return f"StreamRecord(key={self.key}, pos={self.position})"


@runtime_checkable
class CallLedger(Protocol):
    """Protocol for call ledger backends.

    Ordering contract:
        - Records with the same key are totally ordered
        - A subscriber receives records in order within a partition

    Example:
        >>> ledger = InMemoryLedger()
        >>> await ledger.connect()
        >>> pos = await ledger.append("larder-calls", "registry", call_bytes)
    """

    async def connect(self) -> None:
        """Connect to the backend. Must be called before any other operation.

        Raises:
            LedgerConnectionError: If connection fails
        """
        ...

    async def close(self) -> None:
        """Flush pending writes and release resources."""
        ...

    async def append(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        """Append a call; returns only once the backend acknowledged it.

        Raises:
            LedgerConnectionError: If not connected
            LedgerTimeoutError: If the write times out
        """
        ...

    def subscribe(
        self,
        topic: str,
        group_id: str,
        start_position: StreamPos | None = None,
    ) -> AsyncIterator[StreamRecord]:
        """Yield records in order, starting after the group's last commit.

        The caller must commit() each record once processed.
        """
        ...

    async def commit(self, record: StreamRecord, group_id: str) -> None:
        """Mark a record (and everything before it) as processed by a group."""
        ...

    async def health_check(self) -> bool:
        """Whether the backend is connected and reachable."""
        ...


def create_ledger(config: RegistryConfig) -> CallLedger:
    """Create a ledger backend from configuration.

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import LedgerBackend

    if config.ledger_backend == LedgerBackend.MEMORY:
        from .memory import InMemoryLedger

        return InMemoryLedger()
    elif config.ledger_backend == LedgerBackend.KAFKA:
        from .kafka import KafkaLedger

        return KafkaLedger(config.kafka)
    else:
        raise ValueError(f"Unsupported ledger backend: {config.ledger_backend}")
