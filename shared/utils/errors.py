"""
Custom error classes for the order ingest services.

Provides structured error handling with error codes,
context information, and proper exception chaining.
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Error context information."""
    service: str
    operation: str
    order_uid: Optional[str] = None
    payload_size: Optional[int] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        if self.context:
            result["context"] = {
                "service": self.context.service,
                "operation": self.context.operation,
                "order_uid": self.context.order_uid,
                "payload_size": self.context.payload_size,
                "correlation_id": self.context.correlation_id,
                "metadata": self.context.metadata,
            }

        return result


class DecodeError(OrderServiceError):
    """Error raised when a payload cannot be decoded into an order."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DECODE_ERROR",
            context=context,
            details=details or {}
        )


class ValidationError(OrderServiceError):
    """Error raised when an order violates one or more business rules."""

    def __init__(
        self,
        message: str,
        violations: Optional[List[str]] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            context=context,
            details=details or {}
        )
        self.violations = list(violations or [])

        if self.violations:
            self.details["violations"] = self.violations


class PersistError(OrderServiceError):
    """Error raised when a storage transaction fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PERSIST_ERROR",
            context=context,
            details=details or {}
        )
        self.operation = operation

        if operation:
            self.details["operation"] = operation


class TransportError(OrderServiceError):
    """Error raised when Kafka fetch, send or commit operations fail."""

    def __init__(
        self,
        message: str,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        offset: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            context=context,
            details=details or {}
        )
        self.topic = topic
        self.partition = partition
        self.offset = offset

        if topic:
            self.details["topic"] = topic
        if partition is not None:
            self.details["partition"] = partition
        if offset is not None:
            self.details["offset"] = offset


class NotFoundError(OrderServiceError):
    """Error raised when an order is absent from both cache and store."""

    def __init__(
        self,
        message: str,
        order_uid: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            context=context,
            details=details or {}
        )
        self.order_uid = order_uid

        if order_uid:
            self.details["order_uid"] = order_uid


class ConfigurationError(OrderServiceError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)


def create_error_context(
    service: str,
    operation: str,
    order_uid: Optional[str] = None,
    payload_size: Optional[int] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ErrorContext:
    """Create error context."""
    return ErrorContext(
        service=service,
        operation=operation,
        order_uid=order_uid,
        payload_size=payload_size,
        correlation_id=correlation_id,
        metadata=metadata or {}
    )
