"""
Kafka producer abstraction for async microservices.

Provides a Kafka producer whose sends wait for the broker
acknowledgement before returning.
"""

import asyncio
from typing import Optional, Callable, Any, Dict
from dataclasses import dataclass

from confluent_kafka import KafkaError, KafkaException, Message, Producer
import structlog

from shared.utils.errors import TransportError
from .config import KafkaConfig


logger = structlog.get_logger()


@dataclass
class ProducerConfig:
    """Producer configuration."""
    topic: str
    delivery_timeout: float = 10.0
    flush_timeout: float = 5.0
    linger_ms: int = 10


@dataclass
class DeliveryReport:
    """Broker acknowledgement for a single message."""
    topic: str
    partition: int
    offset: int


class KafkaProducer:
    """
    Kafka producer with acknowledged sends.

    ``send`` returns only after every in-sync replica acknowledged the
    message (``acks=all``). Client-side retries are disabled; retry
    policy belongs to the caller.
    """

    def __init__(
        self,
        config: ProducerConfig,
        kafka_config: KafkaConfig,
        client_factory: Optional[Callable[[Dict[str, Any]], Any]] = None
    ):
        self.config = config
        self.kafka_config = kafka_config
        self._client_factory = client_factory or Producer

        self.logger = structlog.get_logger("kafka-producer")
        self.producer: Optional[Any] = None
        self.running = False

        # Metrics
        self.messages_sent = 0
        self.messages_failed = 0
        self.last_message_time: Optional[float] = None

    def _client_settings(self) -> Dict[str, Any]:
        """Build librdkafka settings for the producer client."""
        return {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'acks': 'all',
            'retries': 0,
            'linger.ms': self.config.linger_ms,
            'message.timeout.ms': int(self.config.delivery_timeout * 1000),
            'partitioner': 'murmur2_random',
        }

    async def start(self) -> None:
        """Start the producer."""
        if self.running:
            return

        self.logger.info("Starting Kafka producer", topic=self.config.topic)

        self.producer = self._client_factory(self._client_settings())
        self.running = True

    async def stop(self) -> None:
        """Flush outstanding messages and stop the producer."""
        if not self.running:
            return

        self.logger.info("Stopping Kafka producer")
        self.running = False

        if self.producer:
            loop = asyncio.get_running_loop()
            remaining = await loop.run_in_executor(None, self.producer.flush, self.config.flush_timeout)
            if remaining:
                self.logger.warning("Messages left unflushed on stop", remaining=remaining)
            self.producer = None

        self.logger.info("Kafka producer stopped")

    async def send(self, key: Optional[str], value: bytes) -> DeliveryReport:
        """
        Send one message and wait for its acknowledgement.

        Raises:
            TransportError: If the producer is not running, the send is
                rejected, or the acknowledgement fails or times out.
        """
        if not self.running or not self.producer:
            raise TransportError("Producer is not running", topic=self.config.topic)

        loop = asyncio.get_running_loop()
        delivered: asyncio.Future = loop.create_future()

        def _on_delivery(err: Optional[KafkaError], msg: Optional[Message]) -> None:
            # Called from whichever thread serves the client's callbacks
            loop.call_soon_threadsafe(self._resolve_delivery, delivered, err, msg)

        try:
            self.producer.produce(
                topic=self.config.topic,
                key=key.encode('utf-8') if key else None,
                value=value,
                on_delivery=_on_delivery
            )
        except (KafkaException, BufferError) as e:
            self.messages_failed += 1
            self.logger.error("Message send error", error=str(e), topic=self.config.topic, key=key)
            raise TransportError(f"Kafka send failed: {e}", topic=self.config.topic) from e

        deadline = loop.time() + self.config.delivery_timeout
        remaining = await loop.run_in_executor(None, self.producer.flush, self.config.delivery_timeout)

        # A concurrent send's flush may serve this callback; wait out the rest of the budget for it
        try:
            err, msg = await asyncio.wait_for(delivered, timeout=max(deadline - loop.time(), 0.0))
        except asyncio.TimeoutError:
            self.messages_failed += 1
            self.logger.error(
                "Message acknowledgement timed out",
                topic=self.config.topic,
                key=key,
                unflushed=remaining
            )
            raise TransportError("Kafka acknowledgement timed out", topic=self.config.topic)

        if err is not None:
            self.messages_failed += 1
            self.logger.error("Message delivery failed", error=str(err), topic=self.config.topic, key=key)
            raise TransportError(f"Kafka delivery failed: {err}", topic=self.config.topic)

        self.messages_sent += 1
        self.last_message_time = loop.time()

        report = DeliveryReport(topic=msg.topic(), partition=msg.partition(), offset=msg.offset())
        self.logger.debug(
            "Message delivered",
            topic=report.topic,
            partition=report.partition,
            offset=report.offset
        )
        return report

    @staticmethod
    def _resolve_delivery(
        future: asyncio.Future,
        err: Optional[KafkaError],
        msg: Optional[Message]
    ) -> None:
        if not future.done():
            future.set_result((err, msg))

    def get_metrics(self) -> Dict[str, Any]:
        """Get producer metrics."""
        return {
            "messages_sent": self.messages_sent,
            "messages_failed": self.messages_failed,
            "last_message_time": self.last_message_time,
            "running": self.running,
        }
