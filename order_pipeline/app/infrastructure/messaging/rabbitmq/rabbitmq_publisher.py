"""
RabbitMQ publisher: connection lifecycle and keyed publish with confirm, one per channel.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  CONFIRM_ENABLED -> EXCHANGE_DECLARED -> READY.
  On broker disconnect or publish error: READY -> RECONNECTING (backoff) -> CONNECTED -> ... -> READY.
  On shutdown: READY/RECONNECTING -> CLOSING (wait in-flight) -> close channel/connection -> CLOSED.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractExchange
from loguru import logger

from order_pipeline.app.config.settings import Settings
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.core.backoff import exponential_backoff
from order_pipeline.app.infrastructure.messaging.rabbitmq.constants import KEY_HEADER, PublisherState
from order_pipeline.app.infrastructure.messaging.rabbitmq.topology import (
    build_amqp_url,
    declare_channel_exchange,
)
from order_pipeline.app.ports.message_publisher import PublishError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQPublisher:
    """MessagePublisher implementation publishing to the fanout exchange of one channel."""

    def __init__(self, settings: Settings, channel_name: str) -> None:
        self._settings = settings
        self._channel_name = channel_name
        self._state = PublisherState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.Channel | None = None
        self._exchange: AbstractExchange | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == PublisherState.READY

    @property
    def channel_name(self) -> str:
        return self._channel_name

    def _set_state(self, state: PublisherState) -> None:
        self._state = state

    def _register_close_callback(self, connection: aio_pika.RobustConnection) -> None:
        conn = getattr(connection, "connection", connection)
        if callable(getattr(conn, "add_close_callback", None)):
            conn.add_close_callback(self._on_connection_closed)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing:
            return
        self._set_state(PublisherState.RECONNECTING)
        _log("broker_disconnect_detected", channel=self._channel_name)
        if (self._reconnect_task is None or self._reconnect_task.done()) and self._loop:
            def schedule() -> None:
                self._reconnect_task = asyncio.create_task(self._reconnect_loop())
            self._loop.call_soon_threadsafe(schedule)

    async def connect(self) -> None:
        self._set_state(PublisherState.CONNECTING)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", channel=self._channel_name, attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                self._loop = asyncio.get_running_loop()
                self._register_close_callback(self._connection)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", channel=self._channel_name, attempt=attempt)
                    self._set_state(PublisherState.DISCONNECTED)
                    raise
        self._set_state(PublisherState.CONNECTED)
        _log("rmq_connected", channel=self._channel_name)
        await self._open_channel_and_declare()

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        try:
            self._set_state(PublisherState.CHANNEL_OPEN)
            self._channel = await self._connection.channel(publisher_confirms=True)
            self._set_state(PublisherState.CONFIRM_ENABLED)
            self._exchange = await declare_channel_exchange(self._channel, self._channel_name)
            self._set_state(PublisherState.EXCHANGE_DECLARED)
            self._set_state(PublisherState.READY)
        except Exception:
            self._set_state(PublisherState.RECONNECTING)
            await self._close_channel_and_connection()
            raise

    async def _close_channel_and_connection(self) -> None:
        self._exchange = None
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

    async def publish(self, message: dict[str, Any], *, key: str) -> None:
        if self._state != PublisherState.READY:
            _log("publish_rejected", channel=self._channel_name, key=key, reason="publisher_not_ready")
            raise PublishError("publisher_not_ready")
        start = time.perf_counter()
        async with self._lock:
            if self._exchange is None:
                _log("publish_failed", channel=self._channel_name, key=key, reason="connection_lost")
                raise PublishError("connection_lost")
            msg = Message(
                json.dumps(message).encode(),
                delivery_mode=DeliveryMode.PERSISTENT,
                content_type="application/json",
                message_id=key,
                headers={KEY_HEADER: key},
            )
            try:
                await self._exchange.publish(
                    msg,
                    routing_key=key,
                    timeout=self._settings.publish_timeout_seconds,
                )
            except Exception as e:
                _log("publish_failed", channel=self._channel_name, key=key, reason=str(e))
                self._set_state(PublisherState.RECONNECTING)
                if self._reconnect_task is None or self._reconnect_task.done():
                    self._reconnect_task = asyncio.create_task(self._reconnect_loop())
                raise PublishError(f"publish to {self._channel_name} failed: {e}") from e
        latency_ms = (time.perf_counter() - start) * 1000
        _log("publish_success", channel=self._channel_name, key=key, latency_ms=round(latency_ms, 2))

    async def _reconnect_loop(self) -> None:
        self._set_state(PublisherState.RECONNECTING)
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
            _log("rmq_reconnect_attempt", channel=self._channel_name, attempt=attempt)
            try:
                async with self._lock:
                    await self._close_channel_and_connection()
                    self._connection = await aio_pika.connect_robust(build_amqp_url(self._settings))
                    if self._loop is None:
                        self._loop = asyncio.get_running_loop()
                    self._register_close_callback(self._connection)
                    self._set_state(PublisherState.CONNECTED)
                    await self._open_channel_and_declare()
                _log("rmq_reconnected", channel=self._channel_name)
                return
            except Exception as e:
                logger.warning("reconnect failed: {}", e)
        _log("rmq_reconnect_exhausted", channel=self._channel_name)
        self._set_state(PublisherState.DISCONNECTED)

    async def close(self) -> None:
        self._closing = True
        self._set_state(PublisherState.CLOSING)
        _log("publisher_shutdown", channel=self._channel_name)
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            await self._close_channel_and_connection()
        self._set_state(PublisherState.CLOSED)
