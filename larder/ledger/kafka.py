"""
Kafka/Redpanda call ledger.

Invariants:
    - Producer waits for acks from all in-sync replicas by default
    - Idempotent producer prevents duplicate appends on retry
    - Consumers never auto-commit; the applier commits after a receipt exists
    - All calls share one partition key so the ledger keeps one total order

How to change safely:
    - Test against a real Kafka/Redpanda cluster before deploying
    - Changing the partition key breaks height ordering
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError, KafkaError, KafkaTimeoutError
from aiokafka.structs import OffsetAndMetadata, TopicPartition

from ..config import KafkaConfig
from .base import (
    LedgerConnectionError,
    LedgerError,
    LedgerTimeoutError,
    StreamPos,
    StreamRecord,
)

logger = logging.getLogger(__name__)


class KafkaLedger:
    """Kafka implementation of CallLedger using aiokafka.

    One consumer is kept per consumer group, so commit() can find the
    consumer that delivered a record.

    Example:
        >>> ledger = KafkaLedger(KafkaConfig(brokers="localhost:9092"))
        >>> await ledger.connect()
        >>> pos = await ledger.append("larder-calls", "registry", b'{"operation": "get_season"}')
    """

    def __init__(self, config: KafkaConfig) -> None:
        self.config = config
        self._producer: AIOKafkaProducer | None = None
        self._consumers: dict[str, AIOKafkaConsumer] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._producer is not None

    def _security_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.config.security_protocol != "PLAINTEXT":
            options["security_protocol"] = self.config.security_protocol
        if self.config.sasl_mechanism:
            options["sasl_mechanism"] = self.config.sasl_mechanism
            options["sasl_plain_username"] = self.config.sasl_username
            options["sasl_plain_password"] = self.config.sasl_password
        return options

    async def connect(self) -> None:
        """Start the producer.

        Raises:
            LedgerConnectionError: If the cluster is unreachable
        """
        if self._connected:
            return

        try:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self.config.brokers,
                acks=self.config.acks,
                enable_idempotence=True,
                linger_ms=5,
                request_timeout_ms=30000,
                retry_backoff_ms=100,
                **self._security_options(),
            )
            await self._producer.start()
            self._connected = True
            logger.info(
                "Connected to Kafka",
                extra={"brokers": self.config.brokers, "acks": self.config.acks},
            )
        except KafkaError as e:
            self._connected = False
            raise LedgerConnectionError(f"Failed to connect to Kafka: {e}") from e

    async def close(self) -> None:
        for group_id, consumer in list(self._consumers.items()):
            try:
                await consumer.stop()
            except KafkaError as e:
                logger.warning(f"Error closing consumer {group_id}: {e}")
        self._consumers.clear()

        if self._producer:
            try:
                await self._producer.stop()
            except KafkaError as e:
                logger.warning(f"Error closing producer: {e}")
            self._producer = None

        self._connected = False
        logger.info("Kafka connections closed")

    async def append(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        """Append a call and wait for the broker acknowledgment.

        Raises:
            LedgerConnectionError: If not connected or the connection drops
            LedgerTimeoutError: If the send times out
            LedgerError: For other Kafka errors
        """
        if not self._producer:
            raise LedgerConnectionError("Not connected to Kafka")

        try:
            metadata = await self._producer.send_and_wait(
                topic,
                value=value,
                key=key.encode("utf-8"),
                headers=list(headers.items()) if headers else None,
            )
        except KafkaTimeoutError as e:
            raise LedgerTimeoutError(f"Kafka send timed out: {e}") from e
        except KafkaConnectionError as e:
            self._connected = False
            raise LedgerConnectionError(f"Kafka connection lost: {e}") from e
        except KafkaError as e:
            raise LedgerError(f"Kafka send failed: {e}") from e

        pos = StreamPos(
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            timestamp_ms=metadata.timestamp or int(time.time() * 1000),
        )
        logger.debug(
            "Call appended to Kafka",
            extra={"topic": topic, "key": key, "partition": pos.partition, "offset": pos.offset},
        )
        return pos

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        start_position: StreamPos | None = None,
    ) -> AsyncIterator[StreamRecord]:
        """Consume a topic as part of a consumer group.

        Raises:
            LedgerConnectionError: If the consumer cannot reach the cluster
            LedgerError: For other consumer errors
        """
        previous = self._consumers.pop(group_id, None)
        if previous is not None:
            await previous.stop()

        consumer = AIOKafkaConsumer(
            topic,
            bootstrap_servers=self.config.brokers,
            group_id=group_id,
            auto_offset_reset=self.config.auto_offset_reset,
            enable_auto_commit=False,
            session_timeout_ms=30000,
            heartbeat_interval_ms=10000,
            **self._security_options(),
        )

        try:
            await consumer.start()
            self._consumers[group_id] = consumer
            logger.info("Subscribed to Kafka topic", extra={"topic": topic, "group_id": group_id})

            if start_position is not None and start_position.topic == topic:
                consumer.seek(
                    TopicPartition(topic, start_position.partition), start_position.offset + 1
                )

            async for msg in consumer:
                yield StreamRecord(
                    key=msg.key.decode("utf-8") if msg.key else "",
                    value=msg.value,
                    position=StreamPos(
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        timestamp_ms=msg.timestamp or int(time.time() * 1000),
                    ),
                    headers=dict(msg.headers) if msg.headers else {},
                )
        except KafkaConnectionError as e:
            raise LedgerConnectionError(f"Failed to subscribe: {e}") from e
        except KafkaError as e:
            raise LedgerError(f"Consumer error: {e}") from e
        finally:
            if self._consumers.get(group_id) is consumer:
                del self._consumers[group_id]
            await consumer.stop()

    async def commit(self, record: StreamRecord, group_id: str) -> None:
        """Commit the offset after a processed record.

        Raises:
            LedgerError: If the group has no active consumer or commit fails
        """
        consumer = self._consumers.get(group_id)
        if consumer is None:
            raise LedgerError(f"No active consumer for group {group_id}")

        tp = TopicPartition(record.position.topic, record.position.partition)
        try:
            await consumer.commit({tp: OffsetAndMetadata(record.position.offset + 1, "")})
        except KafkaError as e:
            raise LedgerError(f"Failed to commit: {e}") from e

        logger.debug(
            "Committed offset",
            extra={"group_id": group_id, "partition": tp.partition, "offset": record.position.offset},
        )

    async def health_check(self) -> bool:
        """Whether the producer can still see cluster metadata."""
        if not self.is_connected:
            return False
        try:
            await self._producer.client.fetch_all_metadata()
            return True
        except KafkaError:
            return False
