"""
Base AsyncService class for microservices.

Provides lifecycle management, HTTP server, health checks,
metrics and graceful shutdown capabilities.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

from aiohttp import web
import psutil
import structlog

from .config import ServiceConfig
from .graceful_shutdown import GracefulShutdownManager, ShutdownReason
from .health import HealthChecker
from .metrics import MetricsCollector


logger = structlog.get_logger(__name__)


METRICS_INTERVAL_SECONDS = 30


class AsyncService(ABC):
    """
    Base class for async microservices.

    Provides common functionality:
    - HTTP API server
    - Health checks
    - Metrics collection
    - Graceful shutdown
    """

    def __init__(self, config: ServiceConfig, shutdown_manager: Optional[GracefulShutdownManager] = None):
        self.config = config
        self.logger = structlog.get_logger(self.config.service_name).bind(service=self.config.service_name)

        # Core components
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        # Framework components
        self.health_checker = HealthChecker(self.config)
        self.metrics = MetricsCollector(self.config.service_name)
        self.shutdown_manager = shutdown_manager or GracefulShutdownManager()

        # Metrics update task
        self.metrics_task: Optional[asyncio.Task] = None

    def build_app(self) -> web.Application:
        """Create the web application with framework and service routes."""
        self.app = web.Application(middlewares=[self._request_metrics_middleware])
        self._setup_routes()
        return self.app

    async def startup(self) -> None:
        """Initialize service components and start serving HTTP."""
        self.logger.info("Starting service", environment=self.config.environment)

        self.build_app()

        # Registered first so a partial startup is still torn down
        self._register_shutdown_handlers()
        await self._startup_hook()

        self.metrics_task = asyncio.create_task(self._update_metrics_periodically())

        self.runner = web.AppRunner(self.app, shutdown_timeout=self.config.shutdown_timeout)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            host=self.config.observability.http_host,
            port=self.config.observability.http_port
        )
        await self.site.start()

        self.logger.info(
            "Service started",
            host=self.config.observability.http_host,
            port=self.config.observability.http_port
        )

    def _register_shutdown_handlers(self) -> None:
        """
        Register ordered shutdown steps. Subclasses extend this and call super().

        The HTTP server goes first so no new work is accepted during drain.
        """
        self.shutdown_manager.add_handler(
            "http-server", self._stop_http, timeout=self.config.shutdown_timeout, priority=0
        )
        self.shutdown_manager.add_handler(
            "metrics-task", self._stop_metrics_task, timeout=5.0, priority=100
        )

    async def _stop_http(self) -> None:
        """Stop listening and let in-flight requests finish."""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            self.site = None

    async def _stop_metrics_task(self) -> None:
        if self.metrics_task:
            self.metrics_task.cancel()
            try:
                await self.metrics_task
            except asyncio.CancelledError:
                pass
            self.metrics_task = None

    async def shutdown(self, reason: ShutdownReason = ShutdownReason.MANUAL) -> bool:
        """Gracefully shutdown service."""
        self.logger.info("Shutting down service", reason=reason.value)
        success = await self.shutdown_manager.shutdown(reason)
        self.logger.info("Service shutdown complete", success=success)
        return success

    def _setup_routes(self) -> None:
        """Setup HTTP routes."""
        if not self.app:
            return

        # Health check endpoints
        self.app.router.add_get("/health", self._health_handler)
        self.app.router.add_get("/health/ready", self._readiness_handler)
        self.app.router.add_get("/health/live", self._liveness_handler)

        # Metrics endpoint
        self.app.router.add_get("/metrics", self._metrics_handler)

        # Service-specific routes
        self._setup_service_routes()

    def _setup_service_routes(self) -> None:
        """Setup service-specific HTTP routes. Override in subclasses."""
        pass

    @web.middleware
    async def _request_metrics_middleware(self, request: web.Request, handler):
        started = time.perf_counter()
        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as exc:
            status = exc.status
            raise
        finally:
            route = request.match_info.route.resource
            endpoint = route.canonical if route is not None else "unmatched"
            self.metrics.record_request(
                method=request.method,
                endpoint=endpoint,
                status=str(status),
                duration=time.perf_counter() - started
            )

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Health check handler."""
        health_status = await self.health_checker.check_health()
        status_code = 200 if health_status["healthy"] else 503

        return web.json_response(health_status, status=status_code)

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        """Readiness check handler."""
        ready_status = await self.health_checker.check_readiness()
        status_code = 200 if ready_status["ready"] else 503

        return web.json_response(ready_status, status=status_code)

    async def _liveness_handler(self, request: web.Request) -> web.Response:
        """Liveness check handler."""
        return web.json_response({"alive": True})

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Metrics handler."""
        return web.Response(
            body=self.metrics.get_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()}
        )

    @abstractmethod
    async def _startup_hook(self) -> None:
        """Service-specific startup logic. Override in subclasses."""
        pass

    async def _update_metrics_periodically(self) -> None:
        """Update metrics periodically."""
        process = psutil.Process()
        while True:
            try:
                self.metrics.update_service_info(
                    version=self.config.version,
                    environment=self.config.environment
                )

                health_status = await self.health_checker.check_health()
                self.metrics.set_health_status(health_status["healthy"])

                self.metrics.set_memory_usage(process.memory_info().rss)

                await asyncio.sleep(METRICS_INTERVAL_SECONDS)

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.warning("Error updating metrics", error=str(e))
                await asyncio.sleep(METRICS_INTERVAL_SECONDS)

    async def run(self) -> ShutdownReason:
        """Run the service until shutdown is requested; returns the shutdown reason."""
        try:
            self.shutdown_manager.install_signal_handlers()
        except NotImplementedError:
            self.logger.warning("Signal handlers not supported on this platform")

        try:
            await self.startup()
            await self.shutdown_manager.wait_for_shutdown()
        except Exception as e:
            self.logger.error("Service error", error=str(e), exc_info=True)
            self.shutdown_manager.request_shutdown(ShutdownReason.ERROR)
            raise
        finally:
            await self.shutdown(self.shutdown_manager.get_shutdown_reason() or ShutdownReason.MANUAL)
            self.shutdown_manager.remove_signal_handlers()

        return self.shutdown_manager.get_shutdown_reason()
