"""
Structured logging setup for the order services.

Provides consistent logging configuration across services
with structured output and the service name bound to every record.
"""

import logging
import sys
import structlog
from structlog.stdlib import LoggerFactory

from .errors import ConfigurationError


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_log_level(log_level: str) -> int:
    """Map a textual level to a stdlib logging level, defaulting to INFO."""
    return _LEVELS.get((log_level or "").strip().lower(), logging.INFO)


def setup_logging(
    service_name: str,
    log_level: str = "info",
    format_type: str = "json"
) -> None:
    """
    Setup structured logging for the service.

    Args:
        service_name: Name of the service
        log_level: Logging level (debug, info, warn, error); unknown values fall back to info
        format_type: Output format (json, console)
    """
    if format_type not in ("json", "console"):
        raise ConfigurationError(
            f"Unsupported log format: {format_type}",
            config_key="log_format",
            config_value=format_type,
        )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=resolve_log_level(log_level),
        force=True,
    )

    # Configure structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Every record carries the service name
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
