"""Bounded in-process order cache."""

from .order_cache import BoundedOrderCache, DEFAULT_MAX_ITEMS

__all__ = ["BoundedOrderCache", "DEFAULT_MAX_ITEMS"]
