"""In-memory DeadLetterSink: ordered list, lost on restart."""
from __future__ import annotations

import threading
from datetime import datetime, timezone

from order_pipeline.app.domain.models import FailedOrder, Order


class InMemoryDeadLetterSink:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[FailedOrder] = []

    async def record(self, order: Order, reason: str) -> FailedOrder:
        failed = FailedOrder.from_order(order, failed_at=datetime.now(timezone.utc), reason=reason)
        with self._lock:
            self._entries.append(failed)
        return failed

    async def list(self) -> list[FailedOrder]:
        with self._lock:
            return list(self._entries)

    async def count(self) -> int:
        with self._lock:
            return len(self._entries)

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        return
