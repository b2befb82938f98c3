"""Prometheus metrics for the order services, one registry per service instance."""

from typing import Optional

from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)


LATENCY_BUCKETS = [0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]

INGEST_SUCCESS = "success"


class MetricsCollector:
    """
    Order pipeline metrics.

    Ingest outcomes are labelled ``success`` or with the lower-cased error
    code of the failure (``decode_error``, ``validation_error``,
    ``persist_error``).
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name.replace("-", "_")
        self.registry = registry or CollectorRegistry()
        prefix = self.service_name

        self.info = Info(prefix, f"Build information about {prefix}", registry=self.registry)

        # HTTP surface
        self.requests_total = Counter(
            f"{prefix}_requests_total",
            "HTTP requests served, by route and status",
            ["method", "endpoint", "status"],
            registry=self.registry
        )
        self.request_duration = Histogram(
            f"{prefix}_request_duration_seconds",
            "HTTP request latency",
            ["method", "endpoint"],
            buckets=LATENCY_BUCKETS + [10.0],
            registry=self.registry
        )

        # Ingest pipeline
        self.orders_ingested = Counter(
            f"{prefix}_orders_ingested_total",
            "Order messages handled, by outcome",
            ["outcome"],
            registry=self.registry
        )
        self.ingest_duration = Histogram(
            f"{prefix}_ingest_duration_seconds",
            "Decode, validate and persist latency of accepted orders",
            buckets=LATENCY_BUCKETS,
            registry=self.registry
        )
        self.consumer_failures = Counter(
            f"{prefix}_consumer_failures_total",
            "Consumer loop terminations, by error code",
            ["error_code"],
            registry=self.registry
        )

        # Read cache
        self.cache_size = Gauge(
            f"{prefix}_order_cache_size",
            "Orders currently held in the read cache",
            registry=self.registry
        )
        self.cache_capacity = Gauge(
            f"{prefix}_order_cache_capacity",
            "Maximum number of orders the read cache holds",
            registry=self.registry
        )

        # Process
        self.health_status = Gauge(
            f"{prefix}_health_status",
            "1 when every critical dependency is healthy, else 0",
            registry=self.registry
        )
        self.memory_usage = Gauge(
            f"{prefix}_memory_usage_bytes",
            "Resident set size of the service process",
            registry=self.registry
        )

    def record_request(self, method: str, endpoint: str, status: str, duration: float):
        self.requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_ingest(self, outcome: str, duration: Optional[float] = None):
        """Count one handled order message; ``duration`` is observed for successes only."""
        self.orders_ingested.labels(outcome=outcome).inc()
        if outcome == INGEST_SUCCESS and duration is not None:
            self.ingest_duration.observe(duration)

    def record_consumer_failure(self, error_code: str):
        self.consumer_failures.labels(error_code=error_code).inc()

    def set_cache_usage(self, size: int, capacity: int):
        self.cache_size.set(size)
        self.cache_capacity.set(capacity)

    def set_health_status(self, healthy: bool):
        self.health_status.set(1 if healthy else 0)

    def set_memory_usage(self, bytes_used: int):
        self.memory_usage.set(bytes_used)

    def update_service_info(self, version: str, environment: str, **kwargs):
        self.info.info({
            "version": version,
            "environment": environment,
            **kwargs
        })

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
