"""
Builds orders and publishes them to the orders channel.

Accepts plain Python types and the MessagePublisher abstraction; returns an
outcome. Routers translate outcomes to HTTP status codes and content.
"""
from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from typing import Any

from loguru import logger

from order_pipeline.app.constants import (
    MAX_SYNTHETIC_BATCH,
    MAX_SYNTHETIC_PRICE,
    MIN_SYNTHETIC_PRICE,
    PRODUCT_CATALOG,
)
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.models import Order
from order_pipeline.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass(frozen=True)
class EnqueueOrderOutcome:
    """Result of publishing one or more orders.

    success=True => every order was published; `orders` holds them.
    success=False => error set; `orders` holds the ones published before the failure.
    """

    success: bool
    orders: tuple[Order, ...] = ()
    error: str | None = None

    @property
    def order(self) -> Order | None:
        return self.orders[0] if self.orders else None


def create_random_order(rng: random.Random | None = None) -> Order:
    rng = rng or random.Random()
    price = MIN_SYNTHETIC_PRICE + rng.random() * (MAX_SYNTHETIC_PRICE - MIN_SYNTHETIC_PRICE)
    return Order(
        order_id=str(uuid.uuid4()),
        product=rng.choice(PRODUCT_CATALOG),
        price=round(price, 2),
    )


def validate_batch_count(count: int) -> None:
    if count < 1 or count > MAX_SYNTHETIC_BATCH:
        raise ValueError(f"Count must be between 1 and {MAX_SYNTHETIC_BATCH}")


async def send_specific_order(order: Order, publisher: MessagePublisher) -> EnqueueOrderOutcome:
    return await _publish_all([order], publisher)


async def send_random_orders(
    count: int,
    publisher: MessagePublisher,
    *,
    rng: random.Random | None = None,
) -> EnqueueOrderOutcome:
    """Publish `count` synthetic orders; ValueError when count is out of range."""
    validate_batch_count(count)
    rng = rng or random.Random()
    outcome = await _publish_all([create_random_order(rng) for _ in range(count)], publisher)
    if outcome.success:
        _log("synthetic_orders_sent", count=count)
    return outcome


async def _publish_all(orders: list[Order], publisher: MessagePublisher) -> EnqueueOrderOutcome:
    if not publisher.ready:
        return EnqueueOrderOutcome(success=False, error="publisher_not_ready")

    sent: list[Order] = []
    for order in orders:
        try:
            await publisher.publish(order.to_payload(), key=order.order_id)
        except Exception as e:
            logger.bind(
                service_name=SERVICE_NAME,
                event="order_send_failed",
                order_id=order.order_id,
                error=str(e),
            ).warning("")
            return EnqueueOrderOutcome(success=False, orders=tuple(sent), error=str(e))
        sent.append(order)
        _log("order_sent", order_id=order.order_id, product=order.product, price=order.price)
    return EnqueueOrderOutcome(success=True, orders=tuple(sent))
