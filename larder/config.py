"""
Configuration management for the Larder server.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in sync
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class LedgerBackend(Enum):
    """Supported call ledger backends."""

    MEMORY = "memory"
    KAFKA = "kafka"


@dataclass(frozen=True)
class KafkaConfig:
    """Kafka/Redpanda ledger backend configuration.

    Attributes:
        brokers: Comma-separated list of broker addresses
        sasl_mechanism: SASL authentication mechanism (PLAIN, SCRAM-SHA-256, etc.)
        sasl_username: SASL username (if authentication enabled)
        sasl_password: SASL password (if authentication enabled)
        security_protocol: Security protocol (PLAINTEXT, SASL_SSL, ...)
        acks: Producer acknowledgment level ('all' for strongest durability)
        auto_offset_reset: Where a new consumer group starts reading
    """

    brokers: str = "localhost:9092"
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = None
    security_protocol: str = "PLAINTEXT"
    acks: str = "all"
    auto_offset_reset: str = "earliest"

    @classmethod
    def from_env(cls) -> KafkaConfig:
        """Load configuration from environment variables."""
        return cls(
            brokers=os.getenv("KAFKA_BROKERS", "localhost:9092"),
            sasl_mechanism=os.getenv("KAFKA_SASL_MECHANISM"),
            sasl_username=os.getenv("KAFKA_SASL_USERNAME"),
            sasl_password=os.getenv("KAFKA_SASL_PASSWORD"),
            security_protocol=os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", "earliest"),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory holding the registry database
        db_name: Database file name (":memory:" keeps everything in process)
        wal_mode: SQLite WAL journal mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    data_dir: str = "/var/lib/larder"
    db_name: str = "registry.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "/var/lib/larder"),
            db_name=os.getenv("REGISTRY_DB_NAME", "registry.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class ApplierConfig:
    """Applier and call submission configuration.

    Attributes:
        topic: Ledger topic carrying registry calls
        group_id: Consumer group of the applier
        receipt_timeout_ms: How long a submitter waits for its call to apply
        receipt_poll_ms: Interval between receipt checks while waiting
    """

    topic: str = "larder-calls"
    group_id: str = "larder-applier"
    receipt_timeout_ms: int = 10000
    receipt_poll_ms: int = 50

    @classmethod
    def from_env(cls) -> ApplierConfig:
        """Load configuration from environment variables."""
        return cls(
            topic=os.getenv("LEDGER_TOPIC", "larder-calls"),
            group_id=os.getenv("APPLIER_GROUP_ID", "larder-applier"),
            receipt_timeout_ms=int(os.getenv("RECEIPT_TIMEOUT_MS", "10000")),
            receipt_poll_ms=int(os.getenv("RECEIPT_POLL_MS", "50")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8081

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8081")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class RegistryConfig:
    """Complete server configuration.

    Attributes:
        ledger_backend: Which call ledger backend to use
        kafka: Kafka configuration (if ledger_backend is KAFKA)
        storage: Local storage configuration
        applier: Applier configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    ledger_backend: LedgerBackend = LedgerBackend.MEMORY
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    applier: ApplierConfig = field(default_factory=ApplierConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> RegistryConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("LEDGER_BACKEND", "memory").lower()
        try:
            ledger_backend = LedgerBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid LEDGER_BACKEND '{backend_str}'. Must be one of: memory, kafka"
            )

        config = cls(
            ledger_backend=ledger_backend,
            kafka=KafkaConfig.from_env(),
            storage=StorageConfig.from_env(),
            applier=ApplierConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.ledger_backend == LedgerBackend.KAFKA and not self.kafka.brokers:
            raise ValueError("KAFKA_BROKERS is required when LEDGER_BACKEND=kafka")

        if not self.applier.topic:
            raise ValueError("LEDGER_TOPIC must not be empty")

        if self.applier.receipt_poll_ms <= 0:
            raise ValueError("RECEIPT_POLL_MS must be positive")

        if self.storage.db_name != ":memory:" and not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "ledger_backend": self.ledger_backend.value,
                "kafka_brokers": self.kafka.brokers
                if self.ledger_backend == LedgerBackend.KAFKA
                else None,
                "topic": self.applier.topic,
                "data_dir": self.storage.data_dir,
                "db_name": self.storage.db_name,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
