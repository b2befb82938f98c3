"""
Core framework components for async microservices.

Provides base classes and abstractions for building
observable microservices with Kafka integration.
"""

from .service import AsyncService
from .consumer import KafkaConsumer, ConsumerConfig, ConsumerState
from .producer import KafkaProducer, ProducerConfig
from .config import ServiceConfig
from .graceful_shutdown import GracefulShutdownManager, ShutdownReason
from .health import HealthChecker, HealthCheck
from .metrics import MetricsCollector

__all__ = [
    "AsyncService",
    "KafkaConsumer",
    "ConsumerConfig",
    "ConsumerState",
    "KafkaProducer",
    "ProducerConfig",
    "ServiceConfig",
    "GracefulShutdownManager",
    "ShutdownReason",
    "HealthChecker",
    "HealthCheck",
    "MetricsCollector",
]
