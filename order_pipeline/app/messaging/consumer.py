"""Message handler shared by every consumer group."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.ports.incoming_message import IncomingMessage
from order_pipeline.app.ports.message_consumer import MessageHandler

ProcessMessage = Callable[[IncomingMessage], Awaitable[Any]]


def create_message_handler(
    process_message: ProcessMessage,
    message_handler_errors: asyncio.Queue[Exception],
    processing_lock: asyncio.Lock,
    *,
    group: str,
) -> MessageHandler:
    """Create an async message handler that processes one message at a time and records errors.

    A message whose processing raised (malformed body, publish failure) is
    rejected without requeue; the error is logged with its traceback and put
    on message_handler_errors.
    """

    async def on_message(message: IncomingMessage) -> None:
        async with processing_lock:
            try:
                await process_message(message)
            except Exception as e:
                logger.bind(service_name=SERVICE_NAME, group=group, key=message.key).exception(
                    "message handling failed: {}", e
                )
                try:
                    if not message.processed:
                        await message.reject(requeue=False)
                finally:
                    await message_handler_errors.put(e)

    return on_message
