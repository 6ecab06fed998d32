"""Retry processor: bounded, linearly backed-off re-attempts with dead-letter escalation."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from order_pipeline.app.application.aggregate_stats_store import AggregateStatsStore
from order_pipeline.app.application.attempt_tracker import AttemptTracker
from order_pipeline.app.application.order_attempt import attempt_order, dead_letter_payload
from order_pipeline.app.constants import INVALID_PRICE, MAX_RETRIES_REACHED, ProcessingOutcome
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.core.backoff import linear_backoff_delay
from order_pipeline.app.domain.fault_injection import FailureInjector, never_fail
from order_pipeline.app.domain.models import Order, decode_order
from order_pipeline.app.domain.order_validation import (
    InvalidOrderError,
    TransientProcessingError,
    validate_order,
)
from order_pipeline.app.ports.incoming_message import IncomingMessage
from order_pipeline.app.ports.message_publisher import MessagePublisher

Sleep = Callable[[float], Awaitable[None]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RetryProcessor:
    """
    Per-order state machine driven by messages on the retry channel.

    Idle -> Retrying(n) -> Succeeded | Escalated. For each message:
    attempt = previous + 1, wait retry_backoff_seconds * attempt, re-attempt.
    A failed attempt below max_attempts stores the count and re-publishes the
    order to the retry channel; at max_attempts the order goes to the
    dead-letter channel. Success and escalation both delete the record.

    max_attempts counts retry-processor attempts only; the primary attempt is
    not included. Invalid orders are dead-lettered immediately without waiting
    or consuming an attempt. Publish errors propagate before the attempt
    record is changed and before the source message is acked.
    """

    def __init__(
        self,
        stats_store: AggregateStatsStore,
        retry_publisher: MessagePublisher,
        dead_letter_publisher: MessagePublisher,
        *,
        max_attempts: int,
        backoff_seconds: float,
        failure_injector: FailureInjector = never_fail,
        attempts: AttemptTracker | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._stats_store = stats_store
        self._retry_publisher = retry_publisher
        self._dead_letter_publisher = dead_letter_publisher
        self._max_attempts = int(max_attempts)
        self._backoff_seconds = float(backoff_seconds)
        self._failure_injector = failure_injector
        self._attempts = attempts if attempts is not None else AttemptTracker()
        self._sleep = sleep

    @property
    def attempts(self) -> AttemptTracker:
        return self._attempts

    async def process_message(self, message: IncomingMessage) -> ProcessingOutcome:
        order = decode_order(message.body)
        outcome = await self.handle(order)
        await message.ack()
        return outcome

    async def handle(self, order: Order) -> ProcessingOutcome:
        order_id = order.order_id
        try:
            validate_order(order)
        except InvalidOrderError as exc:
            await self._escalate(order, INVALID_PRICE, attempt=self._attempts.get(order_id), error=str(exc))
            return ProcessingOutcome.ESCALATED

        attempt = self._attempts.get(order_id, 0) + 1
        delay = linear_backoff_delay(self._backoff_seconds, attempt)
        _log("retry_attempt_started", order_id=order_id, attempt=attempt, delay=delay)
        await self._sleep(delay)

        try:
            attempt_order(
                order,
                self._stats_store,
                self._failure_injector,
                failure_message="simulated retry failure",
            )
        except (InvalidOrderError, TransientProcessingError) as exc:
            logger.bind(
                service_name=SERVICE_NAME,
                event="retry_attempt_failed",
                order_id=order_id,
                attempt=attempt,
                max_attempts=self._max_attempts,
                error=str(exc),
            ).warning("")
            if attempt >= self._max_attempts:
                await self._escalate(order, MAX_RETRIES_REACHED, attempt=attempt, error=str(exc))
                return ProcessingOutcome.ESCALATED
            await self._retry_publisher.publish(order.to_payload(), key=order_id)
            self._attempts.set(order_id, attempt)
            return ProcessingOutcome.RETRY_SCHEDULED

        self._attempts.delete(order_id)
        _log("retry_attempt_succeeded", order_id=order_id, attempt=attempt)
        return ProcessingOutcome.PROCESSED

    async def _escalate(self, order: Order, reason: str, *, attempt: int, error: str) -> None:
        await self._dead_letter_publisher.publish(dead_letter_payload(order, reason), key=order.order_id)
        self._attempts.delete(order.order_id)
        logger.bind(
            service_name=SERVICE_NAME,
            event="order_dead_lettered",
            order_id=order.order_id,
            attempt=attempt,
            reason=reason,
            error=error,
        ).error("")
