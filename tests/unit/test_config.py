"""
Unit tests for environment configuration.
"""

import pytest

from larder.api import Settings
from larder.config import (
    ApplierConfig,
    HttpConfig,
    LedgerBackend,
    RegistryConfig,
    StorageConfig,
)

ENV_VARS = [
    "LEDGER_BACKEND",
    "KAFKA_BROKERS",
    "DATA_DIR",
    "REGISTRY_DB_NAME",
    "SQLITE_WAL_MODE",
    "LEDGER_TOPIC",
    "RECEIPT_TIMEOUT_MS",
    "RECEIPT_POLL_MS",
    "HTTP_PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestRegistryConfig:
    """Tests for RegistryConfig.from_env."""

    def test_defaults(self):
        config = RegistryConfig.from_env()

        assert config.ledger_backend == LedgerBackend.MEMORY
        assert config.storage == StorageConfig()
        assert config.applier == ApplierConfig()
        assert config.http == HttpConfig()
        assert config.observability.log_format == "json"

    def test_overrides(self, monkeypatch, data_dir):
        monkeypatch.setenv("LEDGER_BACKEND", "KAFKA")
        monkeypatch.setenv("KAFKA_BROKERS", "broker-1:9092,broker-2:9092")
        monkeypatch.setenv("DATA_DIR", data_dir)
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("LEDGER_TOPIC", "calls-staging")
        monkeypatch.setenv("RECEIPT_TIMEOUT_MS", "2500")
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        config = RegistryConfig.from_env()

        assert config.ledger_backend == LedgerBackend.KAFKA
        assert config.kafka.brokers == "broker-1:9092,broker-2:9092"
        assert config.storage.data_dir == data_dir
        assert config.storage.wal_mode is False
        assert config.applier.topic == "calls-staging"
        assert config.applier.receipt_timeout_ms == 2500
        assert config.http.port == 9000
        assert config.observability.log_level == "DEBUG"

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("LEDGER_BACKEND", "kinesis")

        with pytest.raises(ValueError, match="LEDGER_BACKEND"):
            RegistryConfig.from_env()

    def test_kafka_requires_brokers(self, monkeypatch):
        monkeypatch.setenv("LEDGER_BACKEND", "kafka")
        monkeypatch.setenv("KAFKA_BROKERS", "")

        with pytest.raises(ValueError, match="KAFKA_BROKERS"):
            RegistryConfig.from_env()

    def test_poll_interval_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("RECEIPT_POLL_MS", "0")

        with pytest.raises(ValueError, match="RECEIPT_POLL_MS"):
            RegistryConfig.from_env()


class TestHttpSettings:
    """Tests for the pydantic-settings HTTP configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LARDER_HTTP_DEFAULT_WAIT_APPLIED", raising=False)

        settings = Settings()

        assert settings.default_wait_applied is True
        assert "http://localhost:3000" in settings.cors_origins

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LARDER_HTTP_DEFAULT_WAIT_APPLIED", "false")
        monkeypatch.setenv("LARDER_HTTP_CORS_ORIGINS", '["https://larder.example.org"]')

        settings = Settings()

        assert settings.default_wait_applied is False
        assert settings.cors_origins == ["https://larder.example.org"]
