"""One processing attempt for an order, shared by the primary and retry processors."""
from __future__ import annotations

from typing import Any

from order_pipeline.app.application.aggregate_stats_store import AggregateStatsStore
from order_pipeline.app.domain.fault_injection import FailureInjector
from order_pipeline.app.domain.models import AggregateSnapshot, Order
from order_pipeline.app.domain.order_validation import TransientProcessingError, validate_order


def attempt_order(
    order: Order,
    stats_store: AggregateStatsStore,
    failure_injector: FailureInjector,
    *,
    failure_message: str,
) -> AggregateSnapshot:
    """Validate, apply fault injection, then count the order.

    Raises InvalidOrderError or TransientProcessingError; the aggregate is only
    touched when neither is raised.
    """
    validate_order(order)
    if failure_injector(order):
        raise TransientProcessingError(failure_message)
    return stats_store.record_order(order.price)


def dead_letter_payload(order: Order, reason: str) -> dict[str, Any]:
    payload = order.to_payload()
    payload["reason"] = reason
    return payload
