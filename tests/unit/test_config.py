"""Unit tests for configuration and logging setup."""

import logging

import pytest
import structlog

from services.order_ingest.app.config import OrderIngestConfig
from shared.framework.config import ServiceConfig
from shared.utils.errors import ConfigurationError
from shared.utils.logging import resolve_log_level, setup_logging


class TestServiceConfig:
    """Test environment driven configuration."""

    def test_defaults(self):
        config = OrderIngestConfig()

        assert config.service_name == "order_ingest"
        assert config.topic == "orders"
        assert config.consumer_group == "order-ingest-consumer"
        assert config.cache_max_items == 100
        assert config.cache_preload is True
        assert config.environment == "local"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ORDER_INGEST_TOPIC", "orders.v2")
        monkeypatch.setenv("ORDER_INGEST_CONSUMER_GROUP", "ingest-b")
        monkeypatch.setenv("ORDER_INGEST_CACHE_MAX_ITEMS", "7")
        monkeypatch.setenv("ORDER_INGEST_CACHE_PRELOAD", "false")
        monkeypatch.setenv("ORDERS_KAFKA_BOOTSTRAP", "broker-1:9092,broker-2:9092")
        monkeypatch.setenv("ORDERS_HTTP_PORT", "9090")

        config = OrderIngestConfig()

        assert config.topic == "orders.v2"
        assert config.consumer_group == "ingest-b"
        assert config.cache_max_items == 7
        assert config.cache_preload is False
        assert config.kafka.bootstrap_servers == "broker-1:9092,broker-2:9092"
        assert config.observability.http_port == 9090

    def test_invalid_cache_size(self, monkeypatch):
        monkeypatch.setenv("ORDER_INGEST_CACHE_MAX_ITEMS", "many")

        with pytest.raises(ConfigurationError) as exc_info:
            OrderIngestConfig()

        assert exc_info.value.config_key == "ORDER_INGEST_CACHE_MAX_ITEMS"

    @pytest.mark.parametrize(
        "name, value",
        [("ORDERS_HTTP_PORT", "eighty"), ("ORDERS_DRAIN_TIMEOUT", "soon"), ("ORDERS_KAFKA_POLL_TIMEOUT", "")],
    )
    def test_non_numeric_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError) as exc_info:
            OrderIngestConfig()

        assert exc_info.value.config_key == name
        assert exc_info.value.details["config_value"] == value

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("ORDERS_ENV", "moon")

        with pytest.raises(ConfigurationError):
            ServiceConfig(service_name="order_ingest")

    def test_invalid_drain_timeout(self, monkeypatch):
        monkeypatch.setenv("ORDERS_DRAIN_TIMEOUT", "0")

        with pytest.raises(ConfigurationError):
            OrderIngestConfig()

    def test_to_dict_omits_dsn(self):
        data = OrderIngestConfig().to_dict()

        assert data["topic"] == "orders"
        assert "postgres_dsn" not in data["database"]


class TestLoggingSetup:
    """Test structlog configuration."""

    @pytest.fixture(autouse=True)
    def restore_structlog(self):
        yield
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    @pytest.mark.parametrize(
        "name, level",
        [("debug", logging.DEBUG), ("WARN", logging.WARNING), ("error", logging.ERROR), ("bogus", logging.INFO)],
    )
    def test_resolve_log_level(self, name, level):
        assert resolve_log_level(name) == level

    def test_unsupported_format(self):
        with pytest.raises(ConfigurationError):
            setup_logging("order-ingest", format_type="xml")

    def test_binds_service_name(self):
        setup_logging("order-ingest", log_level="debug", format_type="console")

        assert structlog.contextvars.get_contextvars()["service"] == "order-ingest"
        assert logging.getLogger().level == logging.DEBUG
