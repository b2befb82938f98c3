"""
Kafka consumer abstraction for async microservices.

Provides a sequential Kafka consumer with manual offset commits,
cooperative cancellation and fatal transport error propagation.
"""

import asyncio
import functools
import time
from enum import Enum
from typing import Optional, Callable, Any, Awaitable, Dict, List
from dataclasses import dataclass

from confluent_kafka import Consumer, KafkaError, KafkaException, Message
import structlog

from shared.utils.errors import TransportError
from .config import KafkaConfig


logger = structlog.get_logger()


MessageHandler = Callable[[Message], Awaitable[None]]


class ConsumerState(str, Enum):
    """Consumer loop states."""
    IDLE = "idle"
    RUNNING = "running"
    FETCHING = "fetching"
    HANDLING = "handling"
    COMMITTING = "committing"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class ConsumerConfig:
    """Consumer configuration."""
    topics: List[str]
    group_id: str
    auto_offset_reset: str = "latest"
    session_timeout_ms: int = 30000
    poll_timeout: float = 1.0


class KafkaConsumer:
    """
    Sequential Kafka consumer.

    Each cycle fetches one message, hands it to ``message_handler`` and
    commits its offset synchronously before the next fetch. The commit
    happens whatever the handler outcome: handler failures are logged and
    the message is not redelivered. A fetch failure ends the loop with
    ``TransportError``.

    Blocking client calls run in the default executor so the event loop
    keeps serving other tasks.
    """

    def __init__(
        self,
        config: ConsumerConfig,
        kafka_config: KafkaConfig,
        message_handler: MessageHandler,
        client_factory: Optional[Callable[[Dict[str, Any]], Any]] = None
    ):
        self.config = config
        self.kafka_config = kafka_config
        self.message_handler = message_handler
        self._client_factory = client_factory or Consumer

        self.logger = structlog.get_logger("kafka-consumer")
        self.client: Optional[Any] = None
        self.state = ConsumerState.IDLE
        self.task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        # Metrics
        self.messages_processed = 0
        self.messages_failed = 0
        self.commits_failed = 0
        self.last_message_time: Optional[float] = None

    def _client_settings(self) -> Dict[str, Any]:
        """Build librdkafka settings for the consumer client."""
        return {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'group.id': self.config.group_id,
            'auto.offset.reset': self.config.auto_offset_reset,
            'enable.auto.commit': False,
            'session.timeout.ms': self.config.session_timeout_ms,
        }

    @property
    def running(self) -> bool:
        """True while the loop is between start and stop/failure."""
        return self.state not in (ConsumerState.IDLE, ConsumerState.STOPPED, ConsumerState.FAILED)

    async def start(self) -> None:
        """Create the client, subscribe and launch the loop as a task."""
        if self.task and not self.task.done():
            return

        self.logger.info(
            "Starting Kafka consumer",
            topics=self.config.topics,
            group_id=self.config.group_id
        )

        if self.client is None:
            self.client = self._client_factory(self._client_settings())
            self.client.subscribe(self.config.topics)

        self._stop_event.clear()
        self.task = asyncio.create_task(self.run(), name="kafka-consumer-loop")

    def request_stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self._stop_event.set()

    async def run(self) -> None:
        """
        Main consumption loop.

        Returns when a stop has been requested. Raises ``TransportError``
        when fetching from the broker fails.
        """
        if self.client is None:
            raise RuntimeError("Consumer client not created; call start() first")

        self.state = ConsumerState.RUNNING
        try:
            while not self._stop_event.is_set():
                self.state = ConsumerState.FETCHING
                message = await self._fetch()
                if message is None:
                    self.state = ConsumerState.RUNNING
                    continue

                self.state = ConsumerState.HANDLING
                await self._handle(message)

                self.state = ConsumerState.COMMITTING
                await self._commit(message)

                self.state = ConsumerState.RUNNING
        except TransportError as e:
            self.state = ConsumerState.FAILED
            self.logger.error("Consumer loop failed", error=str(e), **e.details)
            raise
        except asyncio.CancelledError:
            self.state = ConsumerState.STOPPED
            raise

        self.state = ConsumerState.STOPPED
        self.logger.info("Consumer loop stopped")

    async def _fetch(self) -> Optional[Message]:
        """Poll a single message; None when nothing arrived within the poll timeout."""
        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(
                None,
                functools.partial(self.client.poll, self.config.poll_timeout)
            )
        except KafkaException as e:
            raise TransportError(
                f"Kafka fetch failed: {e}",
                topic=",".join(self.config.topics)
            ) from e

        if message is None:
            return None

        error = message.error()
        if error is None:
            return message

        if error.code() == KafkaError._PARTITION_EOF:
            # End of partition - normal condition
            return None

        raise TransportError(
            f"Kafka fetch failed: {error}",
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset()
        )

    async def _handle(self, message: Message) -> None:
        """Run the handler; failures are logged and never stop the loop."""
        try:
            await self.message_handler(message)
            self.messages_processed += 1
        except Exception as e:
            self.messages_failed += 1
            self.logger.error(
                "Message handler error",
                error=str(e),
                topic=message.topic(),
                partition=message.partition(),
                offset=message.offset(),
                exc_info=True
            )
        finally:
            self.last_message_time = time.time()

    async def _commit(self, message: Message) -> None:
        """Synchronously commit the offset of a handled message."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                functools.partial(self.client.commit, message=message, asynchronous=False)
            )
        except KafkaException as e:
            self.commits_failed += 1
            self.logger.error(
                "Offset commit failed",
                error=str(e),
                topic=message.topic(),
                partition=message.partition(),
                offset=message.offset()
            )

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Request stop and wait up to ``timeout`` seconds for the current cycle to drain."""
        self.request_stop()

        if not self.task or self.task.done():
            return

        self.logger.info("Stopping Kafka consumer", drain_timeout=timeout)

        _, pending = await asyncio.wait({self.task}, timeout=timeout)
        if pending:
            self.logger.warning("Consumer drain deadline exceeded, cancelling loop", drain_timeout=timeout)
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        self.logger.info("Kafka consumer stopped", state=self.state.value)

    async def close(self) -> None:
        """Leave the consumer group and release the client."""
        if self.client is None:
            return

        client, self.client = self.client, None
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, client.close)
        self.logger.info("Kafka consumer closed")

    def get_metrics(self) -> Dict[str, Any]:
        """Get consumer metrics."""
        return {
            "messages_processed": self.messages_processed,
            "messages_failed": self.messages_failed,
            "commits_failed": self.commits_failed,
            "last_message_time": self.last_message_time,
            "state": self.state.value,
            "running": self.running,
        }
