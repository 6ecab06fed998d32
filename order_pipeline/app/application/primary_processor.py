"""Primary processor: first attempt for every order arriving on the orders channel."""
from __future__ import annotations

from typing import Any

from loguru import logger

from order_pipeline.app.application.aggregate_stats_store import AggregateStatsStore
from order_pipeline.app.application.order_attempt import attempt_order, dead_letter_payload
from order_pipeline.app.constants import INVALID_PRICE, ProcessingOutcome
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.fault_injection import FailureInjector, never_fail
from order_pipeline.app.domain.models import Order, decode_order
from order_pipeline.app.domain.order_validation import InvalidOrderError, TransientProcessingError
from order_pipeline.app.ports.incoming_message import IncomingMessage
from order_pipeline.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PrimaryProcessor:
    """
    Processes new orders once; never relies on the orders channel redelivering.

    - success: count the order in the aggregate store, ack.
    - transient failure: publish the order (keyed by orderId) to the retry channel, ack.
    - invalid order (negative price): publish to the dead-letter channel, ack.
      Invalid orders are never retried.

    Publish errors propagate without acking the source message.
    """

    def __init__(
        self,
        stats_store: AggregateStatsStore,
        retry_publisher: MessagePublisher,
        dead_letter_publisher: MessagePublisher,
        *,
        failure_injector: FailureInjector = never_fail,
    ) -> None:
        self._stats_store = stats_store
        self._retry_publisher = retry_publisher
        self._dead_letter_publisher = dead_letter_publisher
        self._failure_injector = failure_injector

    async def process_message(self, message: IncomingMessage) -> ProcessingOutcome:
        order = decode_order(message.body)
        outcome = await self.handle(order)
        await message.ack()
        return outcome

    async def handle(self, order: Order) -> ProcessingOutcome:
        _log("order_received", order_id=order.order_id, product=order.product, price=order.price)
        try:
            attempt_order(
                order,
                self._stats_store,
                self._failure_injector,
                failure_message="simulated temporary processing failure",
            )
        except InvalidOrderError as exc:
            await self._dead_letter_publisher.publish(
                dead_letter_payload(order, INVALID_PRICE),
                key=order.order_id,
            )
            logger.bind(
                service_name=SERVICE_NAME,
                event="order_rejected",
                order_id=order.order_id,
                error=str(exc),
            ).warning("")
            return ProcessingOutcome.ESCALATED
        except TransientProcessingError as exc:
            await self._retry_publisher.publish(order.to_payload(), key=order.order_id)
            logger.bind(
                service_name=SERVICE_NAME,
                event="order_routed_to_retry",
                order_id=order.order_id,
                error=str(exc),
            ).warning("")
            return ProcessingOutcome.ROUTED_TO_RETRY

        _log("order_processed", order_id=order.order_id)
        return ProcessingOutcome.PROCESSED
