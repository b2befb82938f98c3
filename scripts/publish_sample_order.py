#!/usr/bin/env python3
"""
Publish sample orders to the order ingest topic.

Development helper: builds well-formed orders (or loads one from a JSON
file) and sends each keyed by its ``order_uid``, waiting for the broker
acknowledgement.
"""

import argparse
import asyncio
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from shared.framework.config import KafkaConfig
from shared.framework.producer import KafkaProducer, ProducerConfig
from shared.utils.errors import TransportError
from shared.utils.logging import setup_logging
from services.order_ingest.app.models import Order


logger = structlog.get_logger()


def build_sample_order(order_uid: Optional[str] = None) -> Dict[str, Any]:
    """Build a sample order that passes validation."""
    order_uid = order_uid or uuid.uuid4().hex[:19]
    track_number = f"WBILM{uuid.uuid4().hex[:8].upper()}"
    return {
        "order_uid": order_uid,
        "track_number": track_number,
        "entry": "WBIL",
        "delivery": {
            "name": "Test Testov",
            "phone": "+9720000000",
            "zip": "2639809",
            "city": "Kiryat Mozkin",
            "address": "Ploshad Mira 15",
            "region": "Kraiot",
            "email": "test@gmail.com",
        },
        "payment": {
            "transaction": order_uid,
            "request_id": "",
            "currency": "USD",
            "provider": "wbpay",
            "amount": 1817,
            "payment_dt": int(datetime.now(timezone.utc).timestamp()),
            "bank": "alpha",
            "delivery_cost": 1500,
            "goods_total": 317,
            "custom_fee": 0,
        },
        "items": [
            {
                "chrt_id": 9934930,
                "track_number": track_number,
                "price": 453,
                "rid": uuid.uuid4().hex,
                "name": "Mascaras",
                "sale": 30,
                "size": "0",
                "total_price": 317,
                "nm_id": 2389212,
                "brand": "Vivienne Sabo",
                "status": 202,
            }
        ],
        "locale": "en",
        "internal_signature": "",
        "customer_id": "test",
        "delivery_service": "meest",
        "shardkey": "9",
        "sm_id": 99,
        "date_created": datetime.now(timezone.utc).isoformat(),
        "oof_shard": "1",
    }


async def publish(args: argparse.Namespace) -> int:
    kafka_config = KafkaConfig()
    if args.bootstrap_servers:
        kafka_config.bootstrap_servers = args.bootstrap_servers

    producer = KafkaProducer(
        ProducerConfig(topic=args.topic, delivery_timeout=kafka_config.delivery_timeout_seconds),
        kafka_config
    )
    await producer.start()

    try:
        for index in range(args.count):
            if args.file:
                order = Order.from_payload(Path(args.file).read_bytes())
            else:
                order = Order.model_validate(build_sample_order(args.order_uid if index == 0 else None))

            report = await producer.send(order.order_uid, order.to_payload())
            logger.info(
                "Sample order published",
                order_uid=order.order_uid,
                topic=report.topic,
                partition=report.partition,
                offset=report.offset
            )
    except TransportError as e:
        logger.error("Publishing failed", error=str(e))
        return 1
    finally:
        await producer.stop()

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Publish sample orders")
    parser.add_argument("--topic", default="orders", help="Target topic")
    parser.add_argument("--bootstrap-servers", help="Kafka bootstrap servers (defaults to ORDERS_KAFKA_BOOTSTRAP)")
    parser.add_argument("--count", type=int, default=1, help="Number of orders to publish")
    parser.add_argument("--order-uid", help="Order id for the first generated order")
    parser.add_argument("--file", help="Publish the order stored in this JSON file instead")

    args = parser.parse_args()
    setup_logging("publish-sample-order", format_type="console")

    return asyncio.run(publish(args))


if __name__ == "__main__":
    sys.exit(main())
