"""
Business rules applied to decoded orders before they are persisted.

A required field holding its zero value (blank string, 0, missing or
zero timestamp) counts as missing. Every violation is collected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

from shared.utils.errors import ErrorContext, ValidationError

from ..models import Delivery, Item, Order, Payment


ORDER_REQUIRED_STRINGS = (
    "order_uid",
    "track_number",
    "entry",
    "locale",
    "customer_id",
    "delivery_service",
    "shardkey",
    "oof_shard",
)

DELIVERY_REQUIRED_STRINGS = ("name", "phone", "zip", "city", "address", "region", "email")

PAYMENT_REQUIRED_STRINGS = ("transaction", "currency", "provider")
PAYMENT_REQUIRED_NUMBERS = ("amount", "payment_dt", "delivery_cost", "goods_total")

ITEM_REQUIRED_STRINGS = ("track_number", "rid", "name", "brand")
ITEM_REQUIRED_NUMBERS = ("chrt_id", "price", "total_price", "nm_id", "status")


def _is_blank(value: str) -> bool:
    return not value or not value.strip()


def _is_zero_time(value: Optional[datetime]) -> bool:
    # 0001-01-01 is the zero timestamp some producers send instead of null
    return value is None or value.year <= 1


def _missing(obj: Any, strings: Iterable[str], numbers: Iterable[str] = ()) -> List[str]:
    missing = [name for name in strings if _is_blank(getattr(obj, name))]
    missing.extend(name for name in numbers if getattr(obj, name) == 0)
    return missing


def _check_delivery(delivery: Delivery) -> List[str]:
    return [f"{name} is required" for name in _missing(delivery, DELIVERY_REQUIRED_STRINGS)]


def _check_payment(payment: Payment) -> List[str]:
    return [
        f"{name} is required"
        for name in _missing(payment, PAYMENT_REQUIRED_STRINGS, PAYMENT_REQUIRED_NUMBERS)
    ]


def _check_item(item: Item) -> List[str]:
    return [
        f"{name} is required"
        for name in _missing(item, ITEM_REQUIRED_STRINGS, ITEM_REQUIRED_NUMBERS)
    ]


def validate_order(order: Order) -> List[str]:
    """Return every rule violation of ``order``; an empty list means valid."""
    violations = [f"{name} is required" for name in _missing(order, ORDER_REQUIRED_STRINGS)]

    if order.sm_id == 0:
        violations.append("sm_id is required")
    if _is_zero_time(order.date_created):
        violations.append("date_created is required")

    violations.extend(f"delivery: {problem}" for problem in _check_delivery(order.delivery))
    violations.extend(f"payment: {problem}" for problem in _check_payment(order.payment))

    if not order.items:
        violations.append("items: at least one item is required")
    for index, item in enumerate(order.items):
        violations.extend(f"items: item[{index}]: {problem}" for problem in _check_item(item))

    return violations


def ensure_valid(order: Order, context: Optional[ErrorContext] = None) -> None:
    """Raise ValidationError listing every violation when ``order`` breaks a rule."""
    violations = validate_order(order)
    if violations:
        raise ValidationError(
            "validation failed: " + "; ".join(violations),
            violations=violations,
            context=context,
        )
