"""In-memory fan-out broker for local mode and tests.

Every channel fans out to one asyncio.Queue per subscribed consumer group,
mirroring the exchange-per-channel, queue-per-group layout used on RabbitMQ.
The most recent publishes are also kept in a per-channel history, capped at
history_limit entries, so channels without consumers (e.g. aggregated output)
can be inspected. history_limit=0 keeps no history. Nothing is durable.
"""
from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PublishedMessage:
    key: str
    payload: dict[str, Any]


class InMemoryMessage:
    """Implements order_pipeline.app.ports.incoming_message.IncomingMessage for the in-memory broker."""

    def __init__(self, broker: "InMemoryBroker", queue: asyncio.Queue["InMemoryMessage"], body: bytes, key: str) -> None:
        self._broker = broker
        self._queue = queue
        self._body = body
        self._key = key
        self.acked = False
        self.nacked = False
        self.rejected = False

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def key(self) -> str | None:
        return self._key

    @property
    def processed(self) -> bool:
        return self.acked or self.nacked or self.rejected

    async def ack(self) -> None:
        self.acked = True

    async def nack(self, *, requeue: bool = True) -> None:
        self.nacked = True
        if requeue:
            self._broker.redeliver(self._queue, self._body, self._key)

    async def reject(self, *, requeue: bool = False) -> None:
        self.rejected = True
        if requeue:
            self._broker.redeliver(self._queue, self._body, self._key)


class InMemoryBroker:
    def __init__(self, *, history_limit: int = 1000) -> None:
        if history_limit < 0:
            raise ValueError("history_limit must be >= 0")
        self._queues: dict[str, dict[str, asyncio.Queue[InMemoryMessage]]] = {}
        self._history_limit = history_limit
        self._history: dict[str, deque[PublishedMessage]] = {}
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def subscribe(self, channel_name: str, group: str) -> asyncio.Queue[InMemoryMessage]:
        groups = self._queues.setdefault(channel_name, {})
        if group not in groups:
            groups[group] = asyncio.Queue()
        return groups[group]

    def publish(self, channel_name: str, message: dict[str, Any], *, key: str) -> None:
        body = json.dumps(message).encode()
        if self._history_limit:
            self._history.setdefault(channel_name, deque(maxlen=self._history_limit)).append(
                PublishedMessage(key=key, payload=json.loads(body.decode()))
            )
        for queue in self._queues.get(channel_name, {}).values():
            self._enqueue(queue, body, key)

    def redeliver(self, queue: asyncio.Queue[InMemoryMessage], body: bytes, key: str) -> None:
        self._enqueue(queue, body, key)

    def published(self, channel_name: str) -> list[PublishedMessage]:
        return list(self._history.get(channel_name, []))

    def settle(self) -> None:
        """Mark one delivered message as fully handled by its consumer."""
        self._in_flight -= 1
        if self._in_flight <= 0:
            self._in_flight = 0
            self._idle.set()

    async def drain(self) -> None:
        """Wait until every delivered message, including follow-up publishes, has been handled."""
        await self._idle.wait()

    def _enqueue(self, queue: asyncio.Queue[InMemoryMessage], body: bytes, key: str) -> None:
        self._in_flight += 1
        self._idle.clear()
        queue.put_nowait(InMemoryMessage(self, queue, body, key))
