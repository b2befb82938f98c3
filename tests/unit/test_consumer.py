"""Unit tests for the sequential Kafka consumer loop."""

import asyncio

import pytest
from confluent_kafka import KafkaError, KafkaException

from shared.framework.config import KafkaConfig
from shared.framework.consumer import ConsumerConfig, ConsumerState, KafkaConsumer
from shared.utils.errors import TransportError
from tests.fixtures.mock_services import FakeConsumerClient, FakeMessage


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _consumer(client: FakeConsumerClient, handler) -> KafkaConsumer:
    return KafkaConsumer(
        config=ConsumerConfig(topics=["orders"], group_id="test-group", poll_timeout=0.05),
        kafka_config=KafkaConfig(bootstrap_servers="kafka:9092"),
        message_handler=handler,
        client_factory=client,
    )


class TestKafkaConsumer:
    """Test fetch, handle and commit cycles."""

    @pytest.mark.asyncio
    async def test_client_settings_disable_auto_commit(self, consumer_client):
        async def handler(message):
            pass

        consumer = _consumer(consumer_client, handler)
        await consumer.start()
        try:
            assert consumer_client.settings["enable.auto.commit"] is False
            assert consumer_client.settings["group.id"] == "test-group"
            assert consumer_client.settings["bootstrap.servers"] == "kafka:9092"
            assert consumer_client.subscriptions == ["orders"]
        finally:
            await consumer.stop(timeout=1.0)
            await consumer.close()

    @pytest.mark.asyncio
    async def test_handles_and_commits_each_message_in_order(self, consumer_client):
        handled = []

        async def handler(message):
            handled.append(message.value())

        consumer = _consumer(consumer_client, handler)
        for value in (b"m0", b"m1", b"m2"):
            consumer_client.push_order(value)

        await consumer.start()
        await _wait_for(lambda: len(consumer_client.committed) == 3)
        await consumer.stop(timeout=1.0)

        assert handled == [b"m0", b"m1", b"m2"]
        assert [m.value() for m in consumer_client.committed] == handled
        assert consumer.get_metrics()["messages_processed"] == 3
        assert consumer.state == ConsumerState.STOPPED

    @pytest.mark.asyncio
    async def test_handler_failure_still_commits(self, consumer_client):
        async def handler(message):
            raise ValueError("bad message")

        consumer = _consumer(consumer_client, handler)
        message = consumer_client.push_order(b"poison")

        await consumer.start()
        await _wait_for(lambda: consumer_client.committed)
        await consumer.stop(timeout=1.0)

        assert consumer_client.committed == [message]
        assert consumer.messages_failed == 1

    @pytest.mark.asyncio
    async def test_commit_failure_does_not_stop_loop(self, consumer_client):
        handled = []
        attempts = []
        commit = consumer_client.commit

        def flaky_commit(message=None, asynchronous=True):
            attempts.append(message)
            if len(attempts) == 1:
                raise KafkaException(KafkaError(KafkaError._TRANSPORT))
            commit(message=message, asynchronous=asynchronous)

        async def handler(message):
            handled.append(message.value())

        consumer = _consumer(consumer_client, handler)
        consumer_client.commit = flaky_commit
        consumer_client.push_order(b"first")
        consumer_client.push_order(b"second")

        await consumer.start()
        await _wait_for(lambda: len(consumer_client.committed) == 1)
        await consumer.stop(timeout=1.0)

        assert handled == [b"first", b"second"]
        assert [m.value() for m in consumer_client.committed] == [b"second"]
        assert consumer.commits_failed == 1
        assert consumer.state == ConsumerState.STOPPED

    @pytest.mark.asyncio
    async def test_partition_eof_is_not_an_error(self, consumer_client):
        handled = []

        async def handler(message):
            handled.append(message.value())

        consumer = _consumer(consumer_client, handler)
        consumer_client.push(FakeMessage(None, error=KafkaError(KafkaError._PARTITION_EOF)))
        consumer_client.push_order(b"after-eof")

        await consumer.start()
        await _wait_for(lambda: handled)
        await consumer.stop(timeout=1.0)

        assert handled == [b"after-eof"]

    @pytest.mark.asyncio
    async def test_poll_exception_fails_loop(self, consumer_client):
        async def handler(message):
            pass

        consumer = _consumer(consumer_client, handler)
        consumer_client.push(KafkaException(KafkaError(KafkaError._TRANSPORT)))

        await consumer.start()
        with pytest.raises(TransportError):
            await consumer.task

        assert consumer.state == ConsumerState.FAILED
        assert not consumer.running

    @pytest.mark.asyncio
    async def test_message_error_fails_loop(self, consumer_client):
        async def handler(message):
            pass

        consumer = _consumer(consumer_client, handler)
        consumer_client.push(
            FakeMessage(None, topic="orders", partition=2, offset=7, error=KafkaError(KafkaError._TRANSPORT))
        )

        await consumer.start()
        with pytest.raises(TransportError) as exc_info:
            await consumer.task

        assert exc_info.value.details == {"topic": "orders", "partition": 2, "offset": 7}
        assert consumer_client.committed == []

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_message(self, consumer_client):
        release = asyncio.Event()
        handled = []

        async def handler(message):
            await release.wait()
            handled.append(message.value())

        consumer = _consumer(consumer_client, handler)
        consumer_client.push_order(b"slow")

        await consumer.start()
        await _wait_for(lambda: consumer.state == ConsumerState.HANDLING)

        stopping = asyncio.create_task(consumer.stop(timeout=2.0))
        await asyncio.sleep(0.05)
        release.set()
        await stopping

        assert handled == [b"slow"]
        assert len(consumer_client.committed) == 1
        assert consumer.state == ConsumerState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_cancels_after_drain_deadline(self, consumer_client):
        async def handler(message):
            await asyncio.Event().wait()

        consumer = _consumer(consumer_client, handler)
        consumer_client.push_order(b"stuck")

        await consumer.start()
        await _wait_for(lambda: consumer.state == ConsumerState.HANDLING)
        await consumer.stop(timeout=0.1)

        assert consumer.task.cancelled()
        assert consumer.state == ConsumerState.STOPPED
        assert consumer_client.committed == []

    @pytest.mark.asyncio
    async def test_close_releases_client(self, consumer_client):
        async def handler(message):
            pass

        consumer = _consumer(consumer_client, handler)
        await consumer.start()
        await consumer.stop(timeout=1.0)
        await consumer.close()

        assert consumer_client.closed
        assert consumer.client is None
