"""
Composition root: single place where concrete implementations are wired.

Builds the broker backend, one publisher per channel, one consumer per
consumer group, the stats store, dead-letter sink and the processors that
join them. Provides connect/start/close lifecycle; main.py's lifespan copies
the pieces the HTTP surface needs onto app.state.

Topology:
  orders           -> primary group (PrimaryProcessor), aggregation group (StreamAggregator)
  orders.retry     -> retry group (RetryProcessor)
  orders.dlq       -> dead-letter group (DeadLetterConsumer)
  orders.aggregated   output only
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from order_pipeline.app.application.aggregate_stats_store import AggregateStatsStore
from order_pipeline.app.application.dead_letter_consumer import DeadLetterConsumer
from order_pipeline.app.application.primary_processor import PrimaryProcessor
from order_pipeline.app.application.retry_processor import RetryProcessor
from order_pipeline.app.application.stream_aggregator import StreamAggregator
from order_pipeline.app.config.settings import Settings
from order_pipeline.app.constants import ConsumerGroup
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.fault_injection import FailureInjector, RandomFailureInjector
from order_pipeline.app.infrastructure.messaging.factory import (
    create_broker,
    create_message_consumer,
    create_message_publisher,
)
from order_pipeline.app.infrastructure.messaging.inmemory.broker import InMemoryBroker
from order_pipeline.app.infrastructure.persistence.factory import create_dead_letter_sink
from order_pipeline.app.messaging.consumer import create_message_handler
from order_pipeline.app.ports.dead_letter_sink import DeadLetterSink
from order_pipeline.app.ports.incoming_message import IncomingMessage
from order_pipeline.app.ports.message_consumer import MessageConsumer
from order_pipeline.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class AppDependencies:
    """Holds wired pipeline dependencies and their lifecycle. Built only in composition root."""

    def __init__(
        self,
        *,
        settings: Settings,
        primary_failure_injector: FailureInjector | None = None,
        retry_failure_injector: FailureInjector | None = None,
        retry_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._primary_failure_injector = primary_failure_injector or RandomFailureInjector(
            settings.primary_failure_probability
        )
        self._retry_failure_injector = retry_failure_injector or RandomFailureInjector(
            settings.retry_failure_probability
        )
        self._retry_sleep = retry_sleep

        self._broker: InMemoryBroker | None = None
        self._publishers: dict[str, MessagePublisher] = {}
        self._consumers: dict[str, MessageConsumer] = {}
        self._consumer_tags: dict[str, str] = {}
        self._stats_store = AggregateStatsStore()
        self._dead_letter_sink: DeadLetterSink | None = None
        self._stream_aggregator: StreamAggregator | None = None
        self._retry_processor: RetryProcessor | None = None
        self._primary_processor: PrimaryProcessor | None = None
        self._dead_letter_consumer: DeadLetterConsumer | None = None
        self._message_handler_errors: asyncio.Queue[Exception] = asyncio.Queue()
        self._error_watcher: asyncio.Task[None] | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def broker(self) -> InMemoryBroker | None:
        """Shared in-process broker when broker_backend=inmemory, else None."""
        return self._broker

    @property
    def stats_store(self) -> AggregateStatsStore:
        return self._stats_store

    @property
    def publisher(self) -> MessagePublisher:
        """Publisher for the orders channel (the HTTP producer's target)."""
        return self._publisher(self._settings.orders_channel)

    @property
    def dead_letter_sink(self) -> DeadLetterSink:
        if self._dead_letter_sink is None:
            raise RuntimeError("dead_letter_sink is not initialized")
        return self._dead_letter_sink

    @property
    def stream_aggregator(self) -> StreamAggregator:
        if self._stream_aggregator is None:
            raise RuntimeError("stream_aggregator is not initialized")
        return self._stream_aggregator

    @property
    def retry_processor(self) -> RetryProcessor:
        if self._retry_processor is None:
            raise RuntimeError("retry_processor is not initialized")
        return self._retry_processor

    @property
    def message_handler_errors(self) -> asyncio.Queue[Exception]:
        return self._message_handler_errors

    def _publisher(self, channel_name: str) -> MessagePublisher:
        publisher = self._publishers.get(channel_name)
        if publisher is None:
            raise RuntimeError(f"publisher for {channel_name} is not initialized")
        return publisher

    async def connect(self) -> None:
        """Open sink, publishers and consumers. Partial connects are rolled back."""
        s = self._settings
        self._broker = create_broker(s)
        try:
            self._dead_letter_sink = await create_dead_letter_sink(s)

            for channel_name in (s.orders_channel, s.retry_channel, s.dead_letter_channel, s.aggregated_channel):
                publisher = create_message_publisher(s, channel_name, broker=self._broker)
                self._publishers[channel_name] = publisher
                await publisher.connect()

            for channel_name, group in self._consumer_bindings():
                consumer = create_message_consumer(s, channel_name, group, broker=self._broker)
                self._consumers[group] = consumer
                await consumer.connect()
        except Exception:
            await self.close()
            raise

        retry_publisher = self._publisher(s.retry_channel)
        dead_letter_publisher = self._publisher(s.dead_letter_channel)
        self._primary_processor = PrimaryProcessor(
            self._stats_store,
            retry_publisher,
            dead_letter_publisher,
            failure_injector=self._primary_failure_injector,
        )
        self._retry_processor = RetryProcessor(
            self._stats_store,
            retry_publisher,
            dead_letter_publisher,
            max_attempts=s.max_retry_attempts,
            backoff_seconds=s.retry_backoff_seconds,
            failure_injector=self._retry_failure_injector,
            sleep=self._retry_sleep,
        )
        self._stream_aggregator = StreamAggregator(self._publisher(s.aggregated_channel))
        self._dead_letter_consumer = DeadLetterConsumer(self.dead_letter_sink)
        self._connected = True
        _log("pipeline_connected", broker_backend=s.broker_backend, dead_letter_backend=s.dead_letter_backend)

    def _consumer_bindings(self) -> list[tuple[str, str]]:
        s = self._settings
        return [
            (s.orders_channel, ConsumerGroup.PRIMARY),
            (s.retry_channel, ConsumerGroup.RETRY),
            (s.dead_letter_channel, ConsumerGroup.DEAD_LETTER),
            (s.orders_channel, ConsumerGroup.AGGREGATION),
        ]

    def _processors(self) -> dict[str, Callable[[IncomingMessage], Awaitable[Any]]]:
        assert self._primary_processor is not None
        assert self._dead_letter_consumer is not None
        return {
            ConsumerGroup.PRIMARY: self._primary_processor.process_message,
            ConsumerGroup.RETRY: self.retry_processor.process_message,
            ConsumerGroup.DEAD_LETTER: self._dead_letter_consumer.process_message,
            ConsumerGroup.AGGREGATION: self.stream_aggregator.process_message,
        }

    async def start(self) -> None:
        """Subscribe every consumer group; each group handles one message at a time."""
        if not self._connected:
            raise RuntimeError("dependencies are not connected")
        for group, process_message in self._processors().items():
            handler = create_message_handler(
                process_message,
                self._message_handler_errors,
                asyncio.Lock(),
                group=group,
            )
            self._consumer_tags[group] = await self._consumers[group].start_consuming(handler)
        self._error_watcher = asyncio.create_task(self._watch_handler_errors())
        _log("pipeline_started", groups=list(self._consumer_tags))

    async def _watch_handler_errors(self) -> None:
        while True:
            error = await self._message_handler_errors.get()
            logger.bind(
                service_name=SERVICE_NAME,
                event="message_handler_error",
                error_type=type(error).__name__,
            ).warning("{}", error)

    async def close(self) -> None:
        if self._error_watcher is not None:
            self._error_watcher.cancel()
            try:
                await self._error_watcher
            except asyncio.CancelledError:
                pass
            self._error_watcher = None

        for group, consumer in self._consumers.items():
            try:
                await consumer.close()
            except Exception as exc:
                logger.warning("consumer {} close failed: {}", group, exc)
        self._consumers = {}
        self._consumer_tags = {}

        for channel_name, publisher in self._publishers.items():
            try:
                await publisher.close()
            except Exception as exc:
                logger.warning("publisher {} close failed: {}", channel_name, exc)
        self._publishers = {}

        if self._dead_letter_sink is not None:
            try:
                await self._dead_letter_sink.close()
            except Exception as exc:
                logger.warning("dead-letter sink close failed: {}", exc)
            self._dead_letter_sink = None

        self._stream_aggregator = None
        self._retry_processor = None
        self._primary_processor = None
        self._dead_letter_consumer = None
        self._connected = False


def create_app_dependencies(settings: Settings | None = None, **overrides: Any) -> AppDependencies:
    """
    Composition root: build all pipeline dependencies in one place.
    Caller owns lifecycle (connect/start/close). Broker and dead-letter
    backends are selected from settings (broker_backend, dead_letter_backend).
    """
    return AppDependencies(settings=settings or Settings(), **overrides)
