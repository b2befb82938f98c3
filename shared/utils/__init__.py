"""
Utility modules for the order services.

Provides common utilities for:
- Structured logging
- Error handling
"""

from .logging import setup_logging
from .errors import (
    OrderServiceError,
    DecodeError,
    ValidationError,
    PersistError,
    TransportError,
    NotFoundError,
    ConfigurationError,
    ErrorContext,
    create_error_context,
)

__all__ = [
    "setup_logging",
    "OrderServiceError",
    "DecodeError",
    "ValidationError",
    "PersistError",
    "TransportError",
    "NotFoundError",
    "ConfigurationError",
    "ErrorContext",
    "create_error_context",
]
