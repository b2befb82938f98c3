"""
Data models used by the order-ingest service.

Missing JSON keys (and explicit nulls) decode to the zero value of the
field type; unknown keys are ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    model_validator,
)

from shared.utils.errors import DecodeError


def _json_integer(value: Any) -> Any:
    # Numeric strings, floats and booleans are not integers on the wire
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("expected a JSON integer")
    return value


def _json_timestamp(value: Any) -> Any:
    if not isinstance(value, (str, datetime)):
        raise ValueError("expected an RFC 3339 timestamp string")
    return value


JsonInt = Annotated[int, BeforeValidator(_json_integer)]
JsonTimestamp = Annotated[Optional[datetime], BeforeValidator(_json_timestamp)]


class _OrderPart(BaseModel):
    """Common settings for every part of the order graph."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Delivery(_OrderPart):
    """Recipient and address of an order."""

    name: str = ""
    phone: str = ""
    zip: str = ""
    city: str = ""
    address: str = ""
    region: str = ""
    email: str = ""


class Payment(_OrderPart):
    """Payment details; amounts are in minor currency units."""

    transaction: str = ""
    request_id: str = ""
    currency: str = ""
    provider: str = ""
    amount: JsonInt = 0
    payment_dt: JsonInt = 0
    bank: str = ""
    delivery_cost: JsonInt = 0
    goods_total: JsonInt = 0
    custom_fee: JsonInt = 0


class Item(_OrderPart):
    """Single line item of an order."""

    chrt_id: JsonInt = 0
    track_number: str = ""
    price: JsonInt = 0
    rid: str = ""
    name: str = ""
    sale: JsonInt = 0
    size: str = ""
    total_price: JsonInt = 0
    nm_id: JsonInt = 0
    brand: str = ""
    status: JsonInt = 0


class Order(_OrderPart):
    """Order aggregate keyed by ``order_uid``."""

    order_uid: str = ""
    track_number: str = ""
    entry: str = ""
    delivery: Delivery = Field(default_factory=Delivery)
    payment: Payment = Field(default_factory=Payment)
    items: List[Item] = Field(default_factory=list)
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: JsonInt = 0
    date_created: JsonTimestamp = None
    oof_shard: str = ""

    @classmethod
    def from_payload(cls, payload: bytes | str) -> "Order":
        """Decode a JSON document into an order; raises DecodeError on malformed input."""
        try:
            return cls.model_validate_json(payload)
        except PydanticValidationError as exc:
            raise DecodeError(
                "failed to decode order payload",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    def to_payload(self) -> bytes:
        """Canonical JSON serialization of the whole order graph."""
        return self.model_dump_json().encode("utf-8")
