"""Port: dead-letter sink for permanently failed orders."""
from __future__ import annotations

from typing import Protocol

from order_pipeline.app.domain.models import FailedOrder, Order


class DeadLetterSink(Protocol):
    """Append-only record of escalated orders. Implementations live in infrastructure."""

    async def record(self, order: Order, reason: str) -> FailedOrder: ...

    async def list(self) -> list[FailedOrder]:
        """Point-in-time copy of all entries in arrival order."""
        ...

    async def count(self) -> int: ...

    async def clear(self) -> None:
        """Remove every entry. Clearing an empty sink is a no-op."""
        ...

    async def close(self) -> None:
        """Release resources (e.g. DB client). No-op allowed if nothing to close."""
        ...
