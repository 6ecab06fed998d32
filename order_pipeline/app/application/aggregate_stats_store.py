"""Global running order statistics shared by the primary and retry processors."""
from __future__ import annotations

import threading
from typing import Any

from loguru import logger

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.models import AggregateSnapshot


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class AggregateStatsStore:
    """
    Count, total and running average of successfully processed orders.

    All three fields live in one immutable snapshot that is replaced under a
    single lock, so readers never observe a count from one update and a total
    from another. The lock is a threading.Lock, which makes the store safe for
    callers on the event loop and in worker threads alike.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = AggregateSnapshot()

    def record_order(self, price: float) -> AggregateSnapshot:
        with self._lock:
            count = self._state.order_count + 1
            total = self._state.total_price + float(price)
            self._state = AggregateSnapshot(
                order_count=count,
                total_price=total,
                running_average=total / count,
            )
            snapshot = self._state
        _log(
            "aggregate_updated",
            order_count=snapshot.order_count,
            total_price=round(snapshot.total_price, 2),
            running_average=round(snapshot.running_average, 2),
        )
        return snapshot

    def snapshot(self) -> AggregateSnapshot:
        with self._lock:
            return self._state

    def reset(self) -> None:
        with self._lock:
            self._state = AggregateSnapshot()
        _log("aggregate_reset")
