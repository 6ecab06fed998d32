"""Port: keyed publish to one channel. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Protocol


class PublishError(RuntimeError):
    """Raised when a message could not be handed to the channel."""


class MessagePublisher(Protocol):
    """Interface for publishing keyed messages to a single channel."""

    async def connect(self) -> None: ...

    async def publish(self, message: dict[str, Any], *, key: str) -> None:
        """Publish message under key; raise PublishError on failure."""
        ...

    async def close(self) -> None: ...

    @property
    def ready(self) -> bool: ...
