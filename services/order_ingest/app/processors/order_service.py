"""
Order ingestion and cache-aside reads.

The store is authoritative; the cache only ever receives orders that were
committed to the store or read back from it.
"""

from __future__ import annotations

from typing import List, Optional, Union

import structlog

from shared.utils.errors import DecodeError, NotFoundError, PersistError, create_error_context

from ..cache import BoundedOrderCache
from ..models import Order
from ..storage import OrderRepository
from ..validation import ensure_valid


logger = structlog.get_logger(__name__)


DEFAULT_LIST_LIMIT = 50


def _key_text(key: Optional[Union[bytes, str]]) -> str:
    if not key:
        return ""
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="replace")
    return key


def _normalize_page(limit: int, offset: int) -> tuple[int, int]:
    if limit <= 0:
        limit = DEFAULT_LIST_LIMIT
    if offset < 0:
        offset = 0
    return limit, offset


class OrderService:
    """Validates, persists and caches orders; serves reads cache-first."""

    def __init__(self, repository: OrderRepository, cache: BoundedOrderCache):
        self.repository = repository
        self.cache = cache

    async def ingest(self, key: Optional[Union[bytes, str]], payload: Union[bytes, str]) -> Order:
        """
        Decode, validate, persist and cache one order message.

        ``key`` is the message routing key; it becomes the order id when the
        payload carries none.

        Raises:
            DecodeError: The payload is not a JSON order.
            ValidationError: The order breaks one or more business rules.
            PersistError: The storage transaction failed; nothing was cached.
        """
        try:
            order = Order.from_payload(payload)
        except DecodeError as e:
            e.context = create_error_context(
                "order_ingest", "decode", order_uid=_key_text(key) or None, payload_size=len(payload)
            )
            raise

        if not order.order_uid:
            order.order_uid = _key_text(key)

        context = create_error_context(
            "order_ingest", "ingest", order_uid=order.order_uid or None, payload_size=len(payload)
        )
        ensure_valid(order, context=context)

        try:
            async with self.repository.transaction() as tx:
                await self.repository.upsert(tx, order)
        except Exception as e:
            raise PersistError(f"failed to persist order: {e}", operation="upsert", context=context) from e

        try:
            self.cache.put(order)
        except Exception as e:
            logger.warning("Cache update failed", order_uid=order.order_uid, error=str(e))

        logger.info("Order ingested", order_uid=order.order_uid, items=len(order.items))
        return order

    async def get_order(self, order_uid: str) -> Order:
        """Return the order from the cache, falling back to the store and backfilling the cache."""
        order, found = self.cache.get(order_uid)
        if found:
            return order

        try:
            order = await self.repository.get(order_uid)
        except Exception as e:
            raise PersistError(f"failed to load order: {e}", operation="get") from e

        if order is None:
            raise NotFoundError("order not found", order_uid=order_uid)

        # An ingest that landed while the store was read holds the newer snapshot
        if order_uid not in self.cache:
            self.cache.put(order)
        return order

    async def list_order_uids(self, limit: int, offset: int) -> List[str]:
        """Stored order ids, newest first."""
        limit, offset = _normalize_page(limit, offset)
        try:
            return await self.repository.list_ids(limit, offset)
        except Exception as e:
            raise PersistError(f"failed to list orders: {e}", operation="list_ids") from e

    async def list_orders(self, limit: int, offset: int) -> List[Order]:
        """Stored orders, newest first."""
        limit, offset = _normalize_page(limit, offset)
        try:
            return await self.repository.list_orders(limit, offset)
        except Exception as e:
            raise PersistError(f"failed to list orders: {e}", operation="list_orders") from e
