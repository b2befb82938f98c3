"""Graceful shutdown handling for services."""

import asyncio
import os
import signal
from typing import List, Callable, Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()


class ShutdownReason(str, Enum):
    """Shutdown reason enumeration."""
    SIGNAL = "signal"
    MANUAL = "manual"
    ERROR = "error"


@dataclass
class ShutdownHandler:
    """Shutdown handler configuration."""
    name: str
    handler: Callable
    timeout: float = 30.0
    priority: int = 0  # Lower numbers run first
    critical: bool = False  # If True, shutdown is reported as failed when this handler fails


class GracefulShutdownManager:
    """
    Coordinates cooperative shutdown.

    A first SIGINT/SIGTERM (or ``request_shutdown``) wakes whoever waits in
    ``wait_for_shutdown``; that owner then calls ``shutdown`` to run the
    handlers in priority order, each bounded by its own timeout. A second
    signal while shutdown is pending or running terminates the process
    immediately.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, exit_func: Callable[[int], Any] = os._exit):
        self.handlers: List[ShutdownHandler] = []
        self.shutdown_reason: Optional[ShutdownReason] = None
        self.is_shutting_down = False
        self.logger = structlog.get_logger("graceful-shutdown")
        self._exit_func = exit_func
        self._shutdown_event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def add_handler(self, name: str, handler: Callable, timeout: float = 30.0,
                    priority: int = 0, critical: bool = False) -> None:
        """Add a shutdown handler."""
        self.handlers.append(ShutdownHandler(
            name=name,
            handler=handler,
            timeout=timeout,
            priority=priority,
            critical=critical
        ))
        # Stable sort keeps registration order within a priority
        self.handlers.sort(key=lambda h: h.priority)

        self.logger.debug("Shutdown handler added",
                          name=name,
                          timeout=timeout,
                          priority=priority,
                          critical=critical)

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Route SIGINT/SIGTERM through the manager."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self.SIGNALS:
            self._loop.add_signal_handler(sig, self._signal_handler, sig)
        self.logger.debug("Signal handlers installed")

    def remove_signal_handlers(self) -> None:
        """Restore default signal handling."""
        if self._loop is None:
            return
        for sig in self.SIGNALS:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def _signal_handler(self, signum: int) -> None:
        """Handle shutdown signals."""
        signal_name = signal.Signals(signum).name

        if self.is_shutdown_requested():
            self.force_exit(signal_name)
            return

        self.logger.info("Received shutdown signal", signal=signal_name)
        self.request_shutdown(ShutdownReason.SIGNAL)

    def request_shutdown(self, reason: ShutdownReason = ShutdownReason.MANUAL) -> None:
        """Record the shutdown reason and wake the waiting owner; the first reason wins."""
        if self.shutdown_reason is None:
            self.shutdown_reason = reason
            self.logger.info("Shutdown requested", reason=reason.value)
        self._shutdown_event.set()

    def force_exit(self, signal_name: str) -> None:
        """Terminate immediately, skipping the remaining drain."""
        self.logger.warning("Second signal received, forcing exit", signal=signal_name)
        self._exit_func(1)

    async def shutdown(self, reason: ShutdownReason = ShutdownReason.MANUAL) -> bool:
        """Run all handlers; returns False when a critical handler failed."""
        if self.is_shutting_down:
            self.logger.warning("Shutdown already in progress")
            return True

        self.request_shutdown(reason)
        self.is_shutting_down = True

        self.logger.info("Starting graceful shutdown", reason=self.shutdown_reason.value)

        success = await self._execute_shutdown_handlers()

        if success:
            self.logger.info("Graceful shutdown completed successfully")
        else:
            self.logger.error("Graceful shutdown completed with errors")
        return success

    async def _execute_shutdown_handlers(self) -> bool:
        """Execute all shutdown handlers."""
        success = True

        for handler in self.handlers:
            try:
                self.logger.info("Executing shutdown handler", name=handler.name)

                await asyncio.wait_for(
                    self._execute_handler(handler),
                    timeout=handler.timeout
                )

                self.logger.info("Shutdown handler completed", name=handler.name)

            except asyncio.TimeoutError:
                self.logger.error("Shutdown handler timeout",
                                  name=handler.name,
                                  timeout=handler.timeout)
                if handler.critical:
                    success = False

            except Exception as e:
                self.logger.error("Shutdown handler failed",
                                  name=handler.name,
                                  error=str(e),
                                  exc_info=True)
                if handler.critical:
                    success = False

        return success

    async def _execute_handler(self, handler: ShutdownHandler) -> None:
        """Execute a single shutdown handler."""
        result = handler.handler()
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            await result

    async def wait_for_shutdown(self) -> None:
        """Wait for a shutdown request."""
        await self._shutdown_event.wait()

    def is_shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_event.is_set()

    def get_shutdown_reason(self) -> Optional[ShutdownReason]:
        """Get the reason for shutdown."""
        return self.shutdown_reason

    def describe(self) -> Dict[str, Any]:
        """Summarise registered handlers in execution order."""
        return {
            "requested": self.is_shutdown_requested(),
            "reason": self.shutdown_reason.value if self.shutdown_reason else None,
            "handlers": [
                {"name": h.name, "priority": h.priority, "timeout": h.timeout}
                for h in self.handlers
            ],
        }
