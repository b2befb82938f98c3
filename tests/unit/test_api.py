"""Unit tests for the order HTTP routes."""

import json

import pytest
from aiohttp import test_utils, web
from confluent_kafka import KafkaError

from services.order_ingest.app.apis import OrdersAPI
from services.order_ingest.app.models import Order
from shared.framework.config import KafkaConfig
from shared.framework.producer import KafkaProducer, ProducerConfig
from tests.fixtures.sample_events import SampleOrderGenerator


@pytest.fixture
async def producer(producer_client):
    producer = KafkaProducer(
        config=ProducerConfig(topic="orders", delivery_timeout=0.5),
        kafka_config=KafkaConfig(bootstrap_servers="kafka:9092"),
        client_factory=producer_client,
    )
    await producer.start()
    yield producer
    await producer.stop()


def _app(order_service, producer=None) -> web.Application:
    app = web.Application()
    OrdersAPI(order_service, producer).register(app)
    return app


@pytest.fixture
async def client(order_service, producer):
    async with test_utils.TestClient(test_utils.TestServer(_app(order_service, producer))) as client:
        yield client


class TestOrderQueries:
    """Test GET /orders and GET /orders/{order_uid}."""

    @pytest.mark.asyncio
    async def test_get_order(self, client, order_service, order_bytes, order_document):
        await order_service.ingest(None, order_bytes)

        resp = await client.get("/orders/o1")

        assert resp.status == 200
        body = await resp.json()
        assert Order.model_validate(body) == Order.model_validate(order_document)

    @pytest.mark.asyncio
    async def test_get_unknown_order(self, client):
        resp = await client.get("/orders/missing")

        assert resp.status == 404
        assert await resp.json() == {"error": "order not found"}

    @pytest.mark.asyncio
    async def test_get_order_store_failure(self, client, repository):
        repository.fail_get = RuntimeError("connection refused")

        resp = await client.get("/orders/o1")

        assert resp.status == 500
        assert await resp.json() == {"error": "internal error"}

    @pytest.mark.asyncio
    async def test_list_orders_paging(self, client, order_service):
        for document in SampleOrderGenerator.generate_orders(5):
            await order_service.ingest(None, json.dumps(document).encode())

        resp = await client.get("/orders", params={"limit": "3", "offset": "0"})
        assert resp.status == 200
        assert await resp.json() == ["order-4", "order-3", "order-2"]

        resp = await client.get("/orders", params={"limit": "2", "offset": "5"})
        assert await resp.json() == []

    @pytest.mark.asyncio
    async def test_list_orders_unparsable_params_use_defaults(self, client, order_service):
        for document in SampleOrderGenerator.generate_orders(3):
            await order_service.ingest(None, json.dumps(document).encode())

        resp = await client.get("/orders", params={"limit": "lots", "offset": "-1x"})

        assert resp.status == 200
        assert await resp.json() == ["order-2", "order-1", "order-0"]

    @pytest.mark.asyncio
    async def test_list_orders_failure(self, client, repository):
        repository.fail_list = RuntimeError("down")

        resp = await client.get("/orders")

        assert resp.status == 500
        assert await resp.json() == {"error": "internal error"}


class TestPublish:
    """Test POST /publish."""

    @pytest.mark.asyncio
    async def test_publish_accepted(self, client, producer_client, order_bytes):
        resp = await client.post("/publish", data=order_bytes)

        assert resp.status == 202
        assert await resp.json() == {"status": "published", "order_uid": "o1"}
        delivered = producer_client.delivered[0]
        assert delivered.key() == b"o1"
        assert Order.from_payload(delivered.value()).order_uid == "o1"

    @pytest.mark.asyncio
    async def test_publish_does_not_validate_business_rules(self, client, producer_client):
        resp = await client.post("/publish", json={"order_uid": "partial"})

        assert resp.status == 202
        assert len(producer_client.delivered) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"{oops", b"[]", b""])
    async def test_publish_invalid_json(self, client, body):
        resp = await client.post("/publish", data=body)

        assert resp.status == 400
        assert await resp.json() == {"error": "invalid JSON"}

    @pytest.mark.asyncio
    async def test_publish_requires_order_uid(self, client, producer_client):
        resp = await client.post("/publish", json={"track_number": "T1"})

        assert resp.status == 400
        assert await resp.json() == {"error": "order_uid is required"}
        assert producer_client.delivered == []

    @pytest.mark.asyncio
    async def test_publish_broker_failure(self, client, producer_client, order_bytes):
        producer_client.delivery_error = KafkaError(KafkaError._MSG_TIMED_OUT)

        resp = await client.post("/publish", data=order_bytes)

        assert resp.status == 502
        assert await resp.json() == {"error": "failed to publish"}

    @pytest.mark.asyncio
    async def test_publish_without_producer(self, order_service, order_bytes):
        async with test_utils.TestClient(test_utils.TestServer(_app(order_service, producer=None))) as client:
            resp = await client.post("/publish", data=order_bytes)

            assert resp.status == 503
            assert await resp.json() == {"error": "producer not initialized"}
