"""
Configuration for the order-ingest service.
"""

from __future__ import annotations

import os

from shared.framework.config import ServiceConfig, env_int
from shared.utils.errors import ConfigurationError

from .cache import DEFAULT_MAX_ITEMS


class OrderIngestConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="order_ingest")

        # Human-readable slug used for logging/identifiers where hyphenated format is preferred
        self.service_slug = "order-ingest"

        # Topics
        self.topic = os.getenv("ORDER_INGEST_TOPIC", "orders")
        self.consumer_group = os.getenv("ORDER_INGEST_CONSUMER_GROUP", "order-ingest-consumer")

        # Cache
        self.cache_max_items = env_int("ORDER_INGEST_CACHE_MAX_ITEMS", DEFAULT_MAX_ITEMS)
        self.cache_preload = os.getenv("ORDER_INGEST_CACHE_PRELOAD", "true").lower() == "true"

        if not self.topic:
            raise ConfigurationError("ORDER_INGEST_TOPIC must not be empty", config_key="ORDER_INGEST_TOPIC")

    def to_dict(self):
        data = super().to_dict()
        data.update(
            {
                "topic": self.topic,
                "consumer_group": self.consumer_group,
                "cache_max_items": self.cache_max_items,
                "cache_preload": self.cache_preload,
            }
        )
        return data
