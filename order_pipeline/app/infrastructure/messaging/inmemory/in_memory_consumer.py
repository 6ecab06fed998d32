"""In-memory consumer: drains one group queue of an InMemoryBroker channel in a background task."""
from __future__ import annotations

import asyncio
import uuid
from typing import Any

from loguru import logger

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.infrastructure.messaging.inmemory.broker import InMemoryBroker, InMemoryMessage
from order_pipeline.app.ports.message_consumer import MessageHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class InMemoryConsumer:
    def __init__(self, broker: InMemoryBroker, channel_name: str, group: str) -> None:
        self._broker = broker
        self._channel_name = channel_name
        self._group = group
        self._queue: asyncio.Queue[InMemoryMessage] | None = None
        self._task: asyncio.Task[None] | None = None
        self._consumer_tag: str | None = None

    async def connect(self) -> None:
        self._queue = self._broker.subscribe(self._channel_name, self._group)

    async def start_consuming(self, handler: MessageHandler) -> str:
        if self._queue is None:
            raise RuntimeError("consumer not connected")
        self._consumer_tag = f"{self._channel_name}.{self._group}.{uuid.uuid4().hex[:8]}"
        self._task = asyncio.create_task(self._consume_loop(self._queue, handler))
        _log("consumer_started", queue=f"{self._channel_name}.{self._group}", consumer_tag=self._consumer_tag)
        return self._consumer_tag

    async def _consume_loop(self, queue: asyncio.Queue[InMemoryMessage], handler: MessageHandler) -> None:
        while True:
            message = await queue.get()
            try:
                await handler(message)
            except Exception as e:
                logger.exception("in-memory handler failed: {}", e)
            finally:
                queue.task_done()
                self._broker.settle()

    async def cancel(self, consumer_tag: str) -> None:
        if consumer_tag != self._consumer_tag or self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._consumer_tag = None

    async def close(self) -> None:
        if self._consumer_tag is not None:
            await self.cancel(self._consumer_tag)
        self._queue = None
