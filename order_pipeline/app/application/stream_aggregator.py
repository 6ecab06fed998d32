"""Streaming per-product running averages over the orders channel.

Unbounded and unwindowed: every non-negative order is folded into its
product's (sum, count) and the new average is emitted at once. Negative
prices are dropped without any error, retry or dead-letter. This pipeline
counts every valid input regardless of how the retry pipeline later treats
the same order, so its averages are a separate read model from the
AggregateStatsStore.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.models import Order, ProductAggregate, ProductAverage, decode_order
from order_pipeline.app.ports.incoming_message import IncomingMessage
from order_pipeline.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class StreamAggregator:
    def __init__(self, output_publisher: MessagePublisher) -> None:
        self._output_publisher = output_publisher
        self._aggregates: dict[str, ProductAggregate] = {}

    async def process_message(self, message: IncomingMessage) -> ProductAverage | None:
        order = decode_order(message.body)
        emitted = await self.handle(order)
        await message.ack()
        return emitted

    async def handle(self, order: Order) -> ProductAverage | None:
        if order.price < 0:
            return None

        current = self._aggregates.get(order.product, ProductAggregate())
        updated = ProductAggregate(total=current.total, count=current.count)
        emitted = ProductAverage(product=order.product, average=updated.add(order.price))
        # The fold is committed only once its average is on the output channel.
        await self._output_publisher.publish(emitted.to_payload(), key=emitted.product)
        self._aggregates[order.product] = updated
        _log(
            "product_average_updated",
            order_id=order.order_id,
            product=emitted.product,
            average=round(emitted.average, 2),
            count=updated.count,
        )
        return emitted

    def averages(self) -> dict[str, float]:
        return {product: agg.average for product, agg in self._aggregates.items()}
