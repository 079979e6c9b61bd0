"""
In-memory call ledger.

Used by unit and integration tests and for local development without a
broker. Every topic is a single partition, so offsets are a total order and
can stand in for the environment's height.

Invariants:
    - All data is lost on close() or process exit
    - Offsets start at 0 and increase by one per append
    - Each consumer group keeps its own committed offset
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import AsyncIterator

from .base import LedgerConnectionError, StreamPos, StreamRecord

logger = logging.getLogger(__name__)


class InMemoryLedger:
    """In-memory implementation of CallLedger.

    Thread safety:
        Uses an asyncio lock; safe across coroutines of one event loop.

    Example:
        >>> ledger = InMemoryLedger()
        >>> await ledger.connect()
        >>> await ledger.append("calls", "registry", b"{}")
        >>> async for record in ledger.subscribe("calls", "applier"):
        ...     await ledger.commit(record, "applier")
    """

    PARTITION = 0

    def __init__(self, poll_interval: float = 1.0) -> None:
        """Initialize the in-memory ledger.

        Args:
            poll_interval: Longest a subscriber sleeps before rechecking
        """
        self.poll_interval = poll_interval
        self._topics: dict[str, list[StreamRecord]] = defaultdict(list)
        self._committed: dict[tuple[str, str], int] = {}
        self._new_records: dict[str, asyncio.Event] = defaultdict(asyncio.Event)
        self._subscribers: set[str] = set()
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.debug("InMemoryLedger connected")

    async def close(self) -> None:
        """Disconnect and drop all data."""
        self._connected = False
        self._topics.clear()
        self._committed.clear()
        self._subscribers.clear()
        for event in self._new_records.values():
            event.set()
        logger.debug("InMemoryLedger closed")

    async def append(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        if not self._connected:
            raise LedgerConnectionError("Not connected")

        async with self._lock:
            records = self._topics[topic]
            pos = StreamPos(
                topic=topic,
                partition=self.PARTITION,
                offset=len(records),
                timestamp_ms=int(time.time() * 1000),
            )
            records.append(StreamRecord(key=key, value=value, position=pos, headers=headers or {}))
            self._new_records[topic].set()

        logger.debug(
            "Call appended to in-memory ledger",
            extra={"topic": topic, "key": key, "offset": pos.offset},
        )
        return pos

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        start_position: StreamPos | None = None,
    ) -> AsyncIterator[StreamRecord]:
        if not self._connected:
            raise LedgerConnectionError("Not connected")

        consumer_key = f"{topic}:{group_id}"
        self._subscribers.add(consumer_key)

        if start_position is not None:
            next_offset = start_position.offset + 1
        else:
            next_offset = self._committed.get((topic, group_id), 0)

        try:
            while consumer_key in self._subscribers:
                new_records = self._new_records[topic]
                new_records.clear()

                async with self._lock:
                    batch = self._topics[topic][next_offset:]

                if not batch:
                    try:
                        await asyncio.wait_for(new_records.wait(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        pass
                    continue

                for record in batch:
                    next_offset = record.position.offset + 1
                    yield record

        finally:
            self._subscribers.discard(consumer_key)

    async def commit(self, record: StreamRecord, group_id: str) -> None:
        key = (record.position.topic, group_id)
        self._committed[key] = max(self._committed.get(key, 0), record.position.offset + 1)

    async def health_check(self) -> bool:
        return self._connected

    def committed_offset(self, topic: str, group_id: str) -> int:
        """Next offset the group will read (testing helper)."""
        return self._committed.get((topic, group_id), 0)

    def get_all_records(self, topic: str) -> list[StreamRecord]:
        """All records of a topic in order (testing helper)."""
        return list(self._topics.get(topic, []))

    def get_record_count(self, topic: str) -> int:
        return len(self._topics.get(topic, []))

    async def wait_for_records(self, topic: str, count: int, timeout: float = 5.0) -> bool:
        """Wait until a topic holds at least `count` records (testing helper)."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.get_record_count(topic) >= count:
                return True
            await asyncio.sleep(0.05)
        return False
