"""Per-order retry attempt counts owned by the retry processor (in-memory, not durable)."""
from __future__ import annotations

import threading


class AttemptTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attempts: dict[str, int] = {}

    def get(self, order_id: str, default: int = 0) -> int:
        with self._lock:
            return self._attempts.get(order_id, default)

    def set(self, order_id: str, attempt: int) -> None:
        with self._lock:
            self._attempts[order_id] = int(attempt)

    def delete(self, order_id: str) -> None:
        with self._lock:
            self._attempts.pop(order_id, None)

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._attempts

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
