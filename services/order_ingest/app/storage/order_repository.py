"""
Persistence gateway for orders.

Orders are stored whole as JSONB under ``order_uid``; a write replaces the
previous snapshot. Listings are ordered by first insertion time, newest
first.
"""

from __future__ import annotations

from typing import Any, AsyncContextManager, List, Optional, Protocol

import structlog

from shared.storage.postgres import PostgresClient

from ..models import Order


logger = structlog.get_logger(__name__)


UPSERT_ORDER_SQL = """
INSERT INTO orders (order_uid, payload)
VALUES ($1, $2::jsonb)
ON CONFLICT (order_uid) DO UPDATE SET payload = EXCLUDED.payload
"""

SELECT_ORDER_SQL = "SELECT payload::text AS payload FROM orders WHERE order_uid = $1"

LIST_ORDER_UIDS_SQL = """
SELECT order_uid FROM orders
ORDER BY created_at DESC
LIMIT $1 OFFSET $2
"""

LIST_ORDERS_SQL = """
SELECT payload::text AS payload FROM orders
ORDER BY created_at DESC
LIMIT $1 OFFSET $2
"""


class OrderRepository(Protocol):
    """Storage operations the order service depends on."""

    def transaction(self) -> AsyncContextManager[Any]:
        """Open a unit of work; commits on normal exit, rolls back on error."""
        ...

    async def upsert(self, tx: Any, order: Order) -> None:
        ...

    async def get(self, order_uid: str) -> Optional[Order]:
        ...

    async def list_ids(self, limit: int, offset: int) -> List[str]:
        ...

    async def list_orders(self, limit: int, offset: int) -> List[Order]:
        ...


class PostgresOrderRepository:
    """``OrderRepository`` backed by the ``orders`` table."""

    def __init__(self, client: PostgresClient):
        self.client = client

    def transaction(self) -> AsyncContextManager[Any]:
        return self.client.transaction()

    async def upsert(self, tx: Any, order: Order) -> None:
        """Insert or fully replace ``order`` inside the open transaction ``tx``."""
        await tx.execute(UPSERT_ORDER_SQL, order.order_uid, order.to_payload().decode("utf-8"))
        logger.debug("Order upserted", order_uid=order.order_uid)

    async def get(self, order_uid: str) -> Optional[Order]:
        row = await self.client.execute_one(SELECT_ORDER_SQL, order_uid)
        if row is None:
            return None
        return Order.from_payload(row["payload"])

    async def list_ids(self, limit: int, offset: int) -> List[str]:
        rows = await self.client.execute(LIST_ORDER_UIDS_SQL, limit, offset)
        return [row["order_uid"] for row in rows]

    async def list_orders(self, limit: int, offset: int) -> List[Order]:
        rows = await self.client.execute(LIST_ORDERS_SQL, limit, offset)
        return [Order.from_payload(row["payload"]) for row in rows]

    async def health_check(self) -> bool:
        return await self.client.health_check()
