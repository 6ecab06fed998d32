"""
RabbitMQ consumer: connection lifecycle, group queue declaration, and consume loop.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  QUEUE_DECLARED -> READY.
  On broker disconnect: READY -> RECONNECTING (backoff) -> CONNECTED -> ... -> READY
  (re-subscribes with stored handler).
  On shutdown: READY/RECONNECTING -> CLOSING -> cancel consumer, close channel/connection -> CLOSED.

Concurrency:
  - Connection close callback may run from another thread; we schedule _reconnect_loop
    on the event loop via call_soon_threadsafe(create_task(...)).
  - close() and _reconnect_loop both acquire _lock around teardown and re-subscribe
    respectively, so we never close the channel while consume() is in progress, and
    reconnect re-checks _closing under the lock before subscribing.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika import IncomingMessage as AioPikaIncomingMessage
from loguru import logger

from order_pipeline.app.config.settings import Settings
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.core.backoff import exponential_backoff
from order_pipeline.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import AioPikaMessageAdapter
from order_pipeline.app.infrastructure.messaging.rabbitmq.constants import ConsumerState
from order_pipeline.app.infrastructure.messaging.rabbitmq.topology import (
    build_amqp_url,
    declare_channel_exchange,
    declare_group_queue,
    group_queue_name,
)
from order_pipeline.app.ports.message_consumer import MessageHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQConsumer:
    """MessageConsumer implementation for one consumer group on one channel."""

    def __init__(self, settings: Settings, channel_name: str, group: str) -> None:
        self._settings = settings
        self._channel_name = channel_name
        self._group = group
        self._state = ConsumerState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.Channel | None = None
        self._queue: aio_pika.Queue | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handler: MessageHandler | None = None
        self._consumer_tag: str | None = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def queue_name(self) -> str:
        return group_queue_name(self._channel_name, self._group)

    def _set_state(self, state: ConsumerState) -> None:
        self._state = state

    def _register_close_callback(self, connection: aio_pika.RobustConnection) -> None:
        conn = getattr(connection, "connection", connection)
        if callable(getattr(conn, "add_close_callback", None)):
            conn.add_close_callback(self._on_connection_closed)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing:
            return
        self._set_state(ConsumerState.RECONNECTING)
        _log("broker_disconnect_detected", queue=self.queue_name)
        if (self._reconnect_task is None or self._reconnect_task.done()) and self._loop:
            def schedule() -> None:
                self._reconnect_task = asyncio.create_task(self._reconnect_loop())
            self._loop.call_soon_threadsafe(schedule)

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        self._set_state(ConsumerState.CHANNEL_OPEN)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self._settings.prefetch_count)
        exchange = await declare_channel_exchange(self._channel, self._channel_name)
        self._queue = await declare_group_queue(
            self._channel,
            exchange,
            self._channel_name,
            self._group,
            self._settings,
        )
        self._set_state(ConsumerState.QUEUE_DECLARED)
        self._set_state(ConsumerState.READY)

    async def _close_channel_and_connection(self) -> None:
        self._queue = None
        self._consumer_tag = None
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def _dispatch(self, raw_message: AioPikaIncomingMessage) -> None:
        if self._handler is not None:
            await self._handler(AioPikaMessageAdapter(raw_message))

    async def connect(self) -> None:
        self._set_state(ConsumerState.CONNECTING)
        _log("rmq_connecting", queue=self.queue_name)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", queue=self.queue_name, attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                self._loop = asyncio.get_running_loop()
                self._register_close_callback(self._connection)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", queue=self.queue_name, attempt=attempt)
                    self._set_state(ConsumerState.DISCONNECTED)
                    raise
        self._set_state(ConsumerState.CONNECTED)
        _log("rmq_connected", queue=self.queue_name)
        await self._open_channel_and_declare()

    async def start_consuming(self, handler: MessageHandler) -> str:
        if self._queue is None:
            raise RuntimeError("consumer not connected")
        async with self._lock:
            if self._queue is None:
                raise RuntimeError("consumer not connected")
            self._handler = handler
            self._consumer_tag = await self._queue.consume(self._dispatch, no_ack=False)
            _log("consumer_started", queue=self.queue_name, consumer_tag=self._consumer_tag)
            return self._consumer_tag

    async def cancel(self, consumer_tag: str) -> None:
        async with self._lock:
            if self._queue is not None and self._consumer_tag is not None:
                await self._queue.cancel(self._consumer_tag)
                self._consumer_tag = None

    async def _reconnect_loop(self) -> None:
        self._set_state(ConsumerState.RECONNECTING)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            if self._closing:
                return
            attempt += 1
            _log("rmq_reconnect_attempt", queue=self.queue_name, attempt=attempt)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                if self._loop is None:
                    self._loop = asyncio.get_running_loop()
                self._register_close_callback(self._connection)
                self._set_state(ConsumerState.CONNECTED)
                await self._open_channel_and_declare()
                async with self._lock:
                    if self._closing:
                        return
                    if self._handler is not None and self._queue is not None:
                        self._consumer_tag = await self._queue.consume(self._dispatch, no_ack=False)
                _log("rmq_reconnected", queue=self.queue_name)
                return
            except Exception as e:
                logger.warning("reconnect failed: {}", e)
        _log("rmq_reconnect_exhausted", queue=self.queue_name, max_attempts=self._settings.max_connection_attempts)
        self._set_state(ConsumerState.DISCONNECTED)

    async def close(self) -> None:
        self._closing = True
        self._set_state(ConsumerState.CLOSING)
        _log("consumer_shutdown", queue=self.queue_name)
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            await self._close_channel_and_connection()
        self._set_state(ConsumerState.CLOSED)
