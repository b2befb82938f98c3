"""
Entry point for the order-ingest service.
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Any, Callable, Dict, Optional

from aiohttp import web
from confluent_kafka import Message
import structlog

from shared.framework.consumer import ConsumerConfig, KafkaConsumer
from shared.framework.graceful_shutdown import GracefulShutdownManager, ShutdownReason
from shared.framework.metrics import INGEST_SUCCESS
from shared.framework.producer import KafkaProducer, ProducerConfig
from shared.framework.service import AsyncService
from shared.storage.postgres import PostgresClient, PostgresConfig
from shared.utils.errors import OrderServiceError
from shared.utils.logging import setup_logging

from .apis import OrdersAPI
from .cache import BoundedOrderCache
from .config import OrderIngestConfig
from .processors import OrderService
from .storage import PostgresOrderRepository

logger = structlog.get_logger(__name__)


ClientFactory = Callable[[Dict[str, Any]], Any]


class OrderIngestService(AsyncService):
    """Consumes order events into PostgreSQL and serves them over HTTP."""

    def __init__(
        self,
        config: Optional[OrderIngestConfig] = None,
        postgres: Optional[PostgresClient] = None,
        consumer_client_factory: Optional[ClientFactory] = None,
        producer_client_factory: Optional[ClientFactory] = None,
        shutdown_manager: Optional[GracefulShutdownManager] = None,
    ) -> None:
        config = config or OrderIngestConfig()
        super().__init__(config, shutdown_manager=shutdown_manager)
        self.config = config

        # Core components
        self.postgres = postgres or PostgresClient(
            PostgresConfig(
                dsn=config.database.postgres_dsn,
                min_size=config.database.pool_min_size,
                max_size=config.database.pool_max_size,
                timeout=config.database.command_timeout,
            )
        )
        self.repository = PostgresOrderRepository(self.postgres)
        self.cache = BoundedOrderCache(config.cache_max_items)
        self.order_service = OrderService(self.repository, self.cache)

        # Kafka producer/consumer
        self.producer = KafkaProducer(
            config=ProducerConfig(
                topic=config.topic,
                delivery_timeout=config.kafka.delivery_timeout_seconds,
            ),
            kafka_config=config.kafka,
            client_factory=producer_client_factory,
        )
        self.consumer = KafkaConsumer(
            config=ConsumerConfig(
                topics=[config.topic],
                group_id=config.consumer_group,
                auto_offset_reset=config.kafka.auto_offset_reset,
                session_timeout_ms=config.kafka.session_timeout_ms,
                poll_timeout=config.kafka.poll_timeout_seconds,
            ),
            kafka_config=config.kafka,
            message_handler=self._handle_message,
            client_factory=consumer_client_factory,
        )

        self.orders_api = OrdersAPI(self.order_service, self.producer)

    async def _startup_hook(self) -> None:
        """Execute service-specific startup logic."""
        await self.postgres.connect()

        if self.config.cache_preload:
            await self.cache.preload(self.order_service)
        self.metrics.set_cache_usage(len(self.cache), self.cache.capacity)

        self.health_checker.watch_postgres(self.postgres)
        self.health_checker.watch_consumer(self.consumer)

        await self.producer.start()
        await self.consumer.start()
        self.consumer.task.add_done_callback(self._on_consumer_done)

        logger.info(
            "Order-ingest service started",
            topic=self.config.topic,
            consumer_group=self.config.consumer_group,
            cache_capacity=self.cache.capacity,
            cache_size=len(self.cache),
        )

    def _register_shutdown_handlers(self) -> None:
        """HTTP, then consumer drain and close, then producer, then the database pool."""
        super()._register_shutdown_handlers()
        drain_timeout = self.config.drain_timeout
        self.shutdown_manager.add_handler(
            "consumer-drain",
            lambda: self.consumer.stop(timeout=drain_timeout),
            timeout=drain_timeout + 5.0,
            priority=10,
        )
        self.shutdown_manager.add_handler("consumer-close", self.consumer.close, timeout=10.0, priority=20)
        self.shutdown_manager.add_handler("producer", self.producer.stop, timeout=10.0, priority=30)
        self.shutdown_manager.add_handler("postgres", self.postgres.disconnect, timeout=10.0, priority=40)

    def _on_consumer_done(self, task: asyncio.Task) -> None:
        """Escalate a failed consumer loop into a full service shutdown."""
        if task.cancelled():
            return

        exc = task.exception()
        if exc is None:
            return

        error_code = getattr(exc, "error_code", type(exc).__name__)
        logger.error("Consumer loop terminated", error=str(exc), error_code=error_code)
        self.metrics.record_consumer_failure(error_code)
        self.shutdown_manager.request_shutdown(ShutdownReason.ERROR)

    def _setup_service_routes(self) -> None:
        """Expose order routes and runtime status."""
        if not self.app:
            return

        self.orders_api.register(self.app)
        self.app.router.add_get("/status", self._status_handler)

    async def _status_handler(self, request: web.Request) -> web.Response:
        """Return basic runtime information."""
        data = {
            "service": self.config.service_slug,
            "topic": self.config.topic,
            "consumer_group": self.config.consumer_group,
            "cache_size": len(self.cache),
            "cache_capacity": self.cache.capacity,
            "consumer": self.consumer.get_metrics(),
            "producer": self.producer.get_metrics(),
        }
        return web.json_response(data)

    async def _handle_message(self, message: Message) -> None:
        """Ingest one order message; failures are logged and counted, never raised."""
        payload = message.value() or b""
        key = message.key()
        start = time.perf_counter()

        try:
            order = await self.order_service.ingest(key, payload)
        except OrderServiceError as e:
            self.metrics.record_ingest(e.error_code.lower())
            context = e.context
            logger.warning(
                "Order ingestion failed",
                order_uid=context.order_uid if context else None,
                payload_size=context.payload_size if context else len(payload),
                error_code=e.error_code,
                error=e.message,
                partition=message.partition(),
                offset=message.offset(),
            )
            return

        self.metrics.record_ingest(INGEST_SUCCESS, duration=time.perf_counter() - start)
        self.metrics.set_cache_usage(len(self.cache), self.cache.capacity)
        logger.debug(
            "Order message handled",
            order_uid=order.order_uid,
            payload_size=len(payload),
            partition=message.partition(),
            offset=message.offset(),
        )


def main() -> int:
    """Run the order-ingest service; exit status 1 when it stops on an error."""
    config = OrderIngestConfig()
    setup_logging(
        config.service_slug,
        log_level=config.observability.log_level,
        format_type=config.observability.log_format,
    )

    service = OrderIngestService(config)
    try:
        reason = asyncio.run(service.run())
    except Exception:
        logger.exception("Order-ingest service crashed")
        return 1

    return 1 if reason == ShutdownReason.ERROR else 0


if __name__ == "__main__":
    sys.exit(main())
