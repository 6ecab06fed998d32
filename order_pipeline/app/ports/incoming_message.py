"""Port: abstraction for an incoming channel message. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol


class IncomingMessage(Protocol):
    """Transport-agnostic incoming message. Application uses this; broker adapters implement it."""

    @property
    def body(self) -> bytes: ...

    @property
    def key(self) -> str | None: ...

    @property
    def processed(self) -> bool: ...

    async def ack(self) -> None: ...

    async def nack(self, *, requeue: bool = True) -> None: ...

    async def reject(self, *, requeue: bool = False) -> None: ...
