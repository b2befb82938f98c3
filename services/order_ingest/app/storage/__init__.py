"""Order persistence gateway."""

from .order_repository import OrderRepository, PostgresOrderRepository

__all__ = ["OrderRepository", "PostgresOrderRepository"]
