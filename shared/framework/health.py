"""
Liveness and readiness checks for the order services.

Readiness depends on the database pool answering and the Kafka consumer
loop being alive; both are critical.
"""

import asyncio
from typing import Dict, Any, List, Optional, Callable
from dataclasses import dataclass
from enum import Enum
import time

import structlog

from .config import ENVIRONMENTS


class HealthStatus(Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheck:
    """A named check of one dependency; ``check_func`` may be sync or async."""
    name: str
    check_func: Callable[[], Any]
    timeout: float = 5.0
    critical: bool = True
    description: Optional[str] = None


class HealthChecker:
    """Runs every registered check concurrently and aggregates the outcome."""

    def __init__(self, config):
        self.config = config
        self.logger = structlog.get_logger("health-checker")
        self.checks: List[HealthCheck] = [
            HealthCheck(
                name="config",
                check_func=self._check_config,
                description="Service configuration validation"
            )
        ]

    def add_check(self, check: HealthCheck) -> None:
        self.checks.append(check)
        self.logger.debug("Added health check", name=check.name)

    def watch_postgres(self, postgres) -> None:
        """Require the PostgreSQL pool to answer ``SELECT 1``."""
        self.add_check(
            HealthCheck(
                name="postgres",
                check_func=postgres.health_check,
                description="PostgreSQL connectivity"
            )
        )

    def watch_consumer(self, consumer) -> None:
        """Require the Kafka consumer loop to be running."""
        self.add_check(
            HealthCheck(
                name="consumer",
                check_func=lambda: consumer.running,
                description="Kafka consumer loop is running"
            )
        )

    async def check_health(self) -> Dict[str, Any]:
        """Perform all health checks and return aggregated status."""
        outcomes = await asyncio.gather(*(self._timed(check) for check in self.checks))

        results = {}
        overall_status = HealthStatus.HEALTHY
        critical_failures = 0
        for check, (healthy, duration, error) in zip(self.checks, outcomes):
            results[check.name] = {
                "status": "healthy" if healthy else "unhealthy",
                "description": check.description,
                "critical": check.critical,
                "duration_ms": duration * 1000,
            }
            if error:
                results[check.name]["error"] = error

            if healthy:
                continue
            if check.critical:
                critical_failures += 1
                overall_status = HealthStatus.UNHEALTHY
            elif overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "healthy": overall_status == HealthStatus.HEALTHY,
            "status": overall_status.value,
            "checks": results,
            "critical_failures": critical_failures,
            "total_checks": len(self.checks),
            "timestamp": time.time(),
        }

    async def check_readiness(self) -> Dict[str, Any]:
        """Ready means no critical check is failing; degraded still serves traffic."""
        health_result = await self.check_health()
        ready = health_result["critical_failures"] == 0

        return {
            "ready": ready,
            "status": "ready" if ready else "not_ready",
            "health": health_result,
            "timestamp": time.time(),
        }

    async def _timed(self, check: HealthCheck):
        started = time.perf_counter()
        try:
            healthy = await asyncio.wait_for(self._run_check(check), timeout=check.timeout)
            error = None
        except asyncio.TimeoutError:
            self.logger.warning("Health check timeout", name=check.name, timeout=check.timeout)
            healthy, error = False, "timeout"
        return healthy, time.perf_counter() - started, error

    async def _run_check(self, check: HealthCheck) -> bool:
        try:
            result = check.check_func()
            if asyncio.iscoroutine(result):
                result = await result
            return bool(result)
        except Exception as e:
            self.logger.error("Health check execution error", name=check.name, error=str(e), exc_info=True)
            return False

    def _check_config(self) -> bool:
        return bool(self.config.service_name) and self.config.environment in ENVIRONMENTS
