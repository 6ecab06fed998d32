"""Order validation and the processing failure taxonomy."""
from __future__ import annotations

from order_pipeline.app.domain.models import Order


class OrderProcessingError(Exception):
    """Base error for a failed processing attempt."""


class InvalidOrderError(OrderProcessingError):
    """Order violates a domain invariant. Never retried."""


class TransientProcessingError(OrderProcessingError):
    """Attempt failed for a reason that may clear on a later attempt."""


def validate_order(order: Order) -> None:
    if order.price < 0:
        raise InvalidOrderError(f"invalid price {order.price}: price cannot be negative")
