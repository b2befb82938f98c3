"""HTTP routes for the order ingest service."""

from .orders import OrdersAPI

__all__ = ["OrdersAPI"]
