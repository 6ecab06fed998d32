"""Domain models and the shared order wire contract."""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Order:
    """One order record as carried on every channel."""

    order_id: str
    product: str
    price: float

    def to_payload(self) -> dict[str, Any]:
        return {"orderId": self.order_id, "product": self.product, "price": float(self.price)}

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "Order":
        """Build an Order from a decoded message body. Unknown keys are ignored."""
        order_id = str(payload.get("orderId") or "").strip()
        if not order_id:
            raise ValueError("message missing required field: orderId")
        product = payload.get("product")
        if not isinstance(product, str) or not product.strip():
            raise ValueError("message missing required field: product")
        raw_price = payload.get("price")
        if isinstance(raw_price, bool) or not isinstance(raw_price, (int, float)):
            raise ValueError("message missing required field: price")
        price = float(raw_price)
        if not math.isfinite(price):
            raise ValueError("message field price must be finite")
        return Order(order_id=order_id, product=product.strip(), price=price)


def decode_payload(raw_body: bytes) -> dict[str, Any]:
    """UTF-8 JSON object from a message body; ValueError otherwise."""
    try:
        body = json.loads(raw_body.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"message body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise ValueError("message body must be a JSON object")
    return body


def decode_order(raw_body: bytes) -> Order:
    return Order.from_payload(decode_payload(raw_body))


@dataclass(frozen=True)
class FailedOrder:
    """Dead-letter entry (value object)."""

    order_id: str
    product: str
    price: float
    failed_at: datetime
    reason: str

    @staticmethod
    def from_order(order: Order, *, failed_at: datetime, reason: str) -> "FailedOrder":
        return FailedOrder(
            order_id=order.order_id,
            product=order.product,
            price=float(order.price),
            failed_at=failed_at,
            reason=reason,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "product": self.product,
            "price": float(self.price),
            "failedAt": self.failed_at.isoformat(),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AggregateSnapshot:
    """Global running statistics at one consistent instant."""

    order_count: int = 0
    total_price: float = 0.0
    running_average: float = 0.0


@dataclass
class ProductAggregate:
    """Running (sum, count) for one product in the streaming pipeline."""

    total: float = 0.0
    count: int = 0

    def add(self, price: float) -> float:
        self.total += price
        self.count += 1
        return self.average

    @property
    def average(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total / self.count


@dataclass(frozen=True)
class ProductAverage:
    """Emitted record on the aggregated-output channel, keyed by product."""

    product: str
    average: float

    def to_payload(self) -> dict[str, Any]:
        return {"product": self.product, "average": float(self.average)}
