"""In-memory publisher for local mode and tests. Publishes into an InMemoryBroker channel."""
from __future__ import annotations

from typing import Any

from order_pipeline.app.infrastructure.messaging.inmemory.broker import InMemoryBroker
from order_pipeline.app.ports.message_publisher import PublishError


class InMemoryPublisher:
    def __init__(self, broker: InMemoryBroker, channel_name: str) -> None:
        self._broker = broker
        self._channel_name = channel_name
        self._closed = False

    @property
    def channel_name(self) -> str:
        return self._channel_name

    async def connect(self) -> None:
        self._closed = False

    @property
    def ready(self) -> bool:
        return not self._closed

    async def publish(self, message: dict[str, Any], *, key: str) -> None:
        if self._closed:
            raise PublishError("publisher_closed")
        self._broker.publish(self._channel_name, message, key=key)

    async def close(self) -> None:
        self._closed = True
