"""Dead-letter consumer: moves messages from the dead-letter channel into the sink."""
from __future__ import annotations

from loguru import logger

from order_pipeline.app.constants import MAX_RETRIES_REACHED
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.models import FailedOrder, Order, decode_payload
from order_pipeline.app.ports.dead_letter_sink import DeadLetterSink
from order_pipeline.app.ports.incoming_message import IncomingMessage


class DeadLetterConsumer:
    def __init__(self, sink: DeadLetterSink) -> None:
        self._sink = sink

    async def process_message(self, message: IncomingMessage) -> FailedOrder:
        order, reason = self._deserialize_message(message.body)
        failed = await self._sink.record(order, reason)
        await message.ack()
        logger.bind(
            service_name=SERVICE_NAME,
            event="dead_letter_recorded",
            order_id=failed.order_id,
            product=failed.product,
            price=failed.price,
            reason=failed.reason,
            failed_orders=await self._sink.count(),
        ).error("")
        return failed

    def _deserialize_message(self, raw_body: bytes) -> tuple[Order, str]:
        body = decode_payload(raw_body)
        reason = str(body.get("reason") or MAX_RETRIES_REACHED)
        return Order.from_payload(body), reason
