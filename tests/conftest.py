"""Pytest configuration and fixtures."""

import pytest

from services.order_ingest.app.cache import BoundedOrderCache
from services.order_ingest.app.models import Order
from services.order_ingest.app.processors import OrderService
from tests.fixtures.mock_services import (
    FakeConsumerClient, FakeProducerClient, InMemoryOrderRepository
)
from tests.fixtures.sample_events import SampleOrderGenerator


@pytest.fixture
def order_document():
    """The reference order ``o1`` as a JSON-ready dict."""
    return SampleOrderGenerator.order("o1")


@pytest.fixture
def order_bytes(order_document):
    """The reference order ``o1`` as a message payload."""
    return SampleOrderGenerator.order_bytes("o1")


@pytest.fixture
def order(order_document):
    """The reference order ``o1`` decoded."""
    return Order.model_validate(order_document)


@pytest.fixture
def repository():
    """In-memory order store."""
    return InMemoryOrderRepository()


@pytest.fixture
def cache():
    """Order cache with the default capacity."""
    return BoundedOrderCache()


@pytest.fixture
def order_service(repository, cache):
    """Order service over the in-memory store."""
    return OrderService(repository, cache)


@pytest.fixture
def consumer_client():
    """Fake Kafka consumer client."""
    return FakeConsumerClient()


@pytest.fixture
def producer_client():
    """Fake Kafka producer client."""
    return FakeProducerClient()


@pytest.fixture(autouse=True)
def order_ingest_env(monkeypatch):
    """Keep configuration independent of the host environment."""
    for name in (
        "ORDERS_ENV",
        "ORDERS_DRAIN_TIMEOUT",
        "ORDER_INGEST_TOPIC",
        "ORDER_INGEST_CONSUMER_GROUP",
        "ORDER_INGEST_CACHE_MAX_ITEMS",
        "ORDER_INGEST_CACHE_PRELOAD",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ORDERS_KAFKA_POLL_TIMEOUT", "0.05")
