"""
Bounded in-process order cache with insertion-order eviction.

Ids live in an index-addressed ring; values live in a dict keyed by id.
When the ring is full, the oldest inserted id is evicted regardless of
how recently it was read.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Protocol, Tuple

import structlog

from ..models import Order


logger = structlog.get_logger(__name__)


DEFAULT_MAX_ITEMS = 100


class RecentOrdersSource(Protocol):
    async def list_orders(self, limit: int, offset: int) -> List[Order]:
        ...


class _ReadWriteLock:
    """Many concurrent readers or one writer; writers exclude readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class BoundedOrderCache:
    """
    FIFO-bounded map of ``order_uid`` to the latest known order.

    Re-putting an id that is already cached overwrites the value in place
    and keeps the id's original position in the eviction order.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        if max_items <= 0:
            max_items = DEFAULT_MAX_ITEMS

        self._capacity = max_items
        self._ring: List[Optional[str]] = [None] * max_items
        self._head = 0  # slot of the oldest id
        self._size = 0
        self._items: dict[str, Order] = {}
        self._lock = _ReadWriteLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def put(self, order: Order) -> None:
        """Insert or overwrite ``order``, evicting the oldest id when full."""
        order_uid = order.order_uid
        with self._lock.write():
            if order_uid in self._items:
                self._items[order_uid] = order
                return

            if self._size == self._capacity:
                evicted = self._ring[self._head]
                self._ring[self._head] = None
                self._head = (self._head + 1) % self._capacity
                self._size -= 1
                self._items.pop(evicted, None)

            self._ring[(self._head + self._size) % self._capacity] = order_uid
            self._size += 1
            self._items[order_uid] = order

    def get(self, order_uid: str) -> Tuple[Optional[Order], bool]:
        """Return ``(order, True)`` on a hit and ``(None, False)`` on a miss."""
        with self._lock.read():
            order = self._items.get(order_uid)
        return order, order is not None

    def keys(self) -> List[str]:
        """Cached ids from oldest to newest insertion."""
        with self._lock.read():
            return [
                self._ring[(self._head + offset) % self._capacity]
                for offset in range(self._size)
            ]

    def __len__(self) -> int:
        with self._lock.read():
            return self._size

    def __contains__(self, order_uid: object) -> bool:
        with self._lock.read():
            return order_uid in self._items

    async def preload(self, source: RecentOrdersSource, limit: Optional[int] = None) -> int:
        """
        Warm the cache with the most recent stored orders.

        Orders are inserted oldest first so the newest end up youngest in
        the eviction order. Source failures are logged and leave the cache
        as it was. Returns the number of orders loaded.
        """
        limit = self._capacity if limit is None or limit <= 0 else limit
        try:
            orders = await source.list_orders(limit, 0)
        except Exception as e:
            logger.warning("Cache preload failed", error=str(e), limit=limit)
            return 0

        for order in reversed(orders):
            self.put(order)

        logger.info("Cache preloaded", loaded=len(orders), capacity=self._capacity)
        return len(orders)
