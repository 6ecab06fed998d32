"""Adapter: wrap aio_pika.IncomingMessage to implement ports.IncomingMessage."""
from __future__ import annotations

from aio_pika import IncomingMessage as AioPikaIncomingMessage

from order_pipeline.app.infrastructure.messaging.rabbitmq.constants import KEY_HEADER


class AioPikaMessageAdapter:
    """Implements order_pipeline.app.ports.incoming_message.IncomingMessage for aio_pika."""

    def __init__(self, message: AioPikaIncomingMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def key(self) -> str | None:
        headers = self._message.headers or {}
        key = headers.get(KEY_HEADER)
        if isinstance(key, bytes):
            key = key.decode()
        return key or self._message.message_id

    @property
    def processed(self) -> bool:
        return bool(self._message.processed)

    async def ack(self) -> None:
        await self._message.ack()

    async def nack(self, *, requeue: bool = True) -> None:
        await self._message.nack(requeue=requeue)

    async def reject(self, *, requeue: bool = False) -> None:
        await self._message.reject(requeue=requeue)
