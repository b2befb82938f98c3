"""
Order query and publish endpoints.

Error responses carry a generic category only; details go to the log.
"""

from __future__ import annotations

from typing import Optional

from aiohttp import web
import structlog

from shared.framework.producer import KafkaProducer
from shared.utils.errors import DecodeError, NotFoundError, OrderServiceError, TransportError

from ..models import Order
from ..processors import OrderService


logger = structlog.get_logger(__name__)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _int_query(request: web.Request, name: str) -> int:
    """Integer query parameter; absent or unparsable values read as 0."""
    try:
        return int(request.query.get(name, ""))
    except ValueError:
        return 0


class OrdersAPI:
    """HTTP surface over ``OrderService`` and the order publisher."""

    def __init__(self, order_service: OrderService, producer: Optional[KafkaProducer] = None):
        self.order_service = order_service
        self.producer = producer

    def register(self, app: web.Application) -> None:
        app.router.add_get("/orders", self.list_orders)
        app.router.add_get("/orders/{order_uid}", self.get_order)
        app.router.add_post("/publish", self.publish)

    async def list_orders(self, request: web.Request) -> web.Response:
        """List order ids, newest first, honouring ``limit`` and ``offset``."""
        limit = _int_query(request, "limit")
        offset = _int_query(request, "offset")
        try:
            order_uids = await self.order_service.list_order_uids(limit, offset)
        except OrderServiceError as e:
            logger.error("Order listing failed", error=str(e), error_code=e.error_code)
            return _error("internal error", 500)

        return web.json_response(order_uids)

    async def get_order(self, request: web.Request) -> web.Response:
        order_uid = request.match_info["order_uid"]
        try:
            order = await self.order_service.get_order(order_uid)
        except NotFoundError:
            return _error("order not found", 404)
        except OrderServiceError as e:
            logger.error("Order lookup failed", order_uid=order_uid, error=str(e), error_code=e.error_code)
            return _error("internal error", 500)

        return web.Response(body=order.to_payload(), content_type="application/json")

    async def publish(self, request: web.Request) -> web.Response:
        """Publish an order to the ingest topic and wait for the broker acknowledgement."""
        body = await request.read()
        try:
            order = Order.from_payload(body)
        except DecodeError:
            return _error("invalid JSON", 400)

        if not order.order_uid.strip():
            return _error("order_uid is required", 400)

        if self.producer is None:
            return _error("producer not initialized", 503)

        try:
            await self.producer.send(order.order_uid, order.to_payload())
        except TransportError as e:
            logger.error("Order publish failed", order_uid=order.order_uid, error=str(e))
            return _error("failed to publish", 502)

        logger.info("Order published", order_uid=order.order_uid, payload_size=len(body))
        return web.json_response({"status": "published", "order_uid": order.order_uid}, status=202)
