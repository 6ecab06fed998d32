from __future__ import annotations

import json
from typing import Any, Iterable

import pytest
from fastapi import FastAPI

from order_pipeline.app.application.aggregate_stats_store import AggregateStatsStore
from order_pipeline.app.application.stream_aggregator import StreamAggregator
from order_pipeline.app.domain.models import Order
from order_pipeline.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from order_pipeline.app.infrastructure.persistence.memory.in_memory_dead_letter_sink import InMemoryDeadLetterSink
from order_pipeline.app.ports.message_publisher import PublishError
from order_pipeline.app.routers.health import health_router
from order_pipeline.app.routers.orders import orders_router


class FakePublisher:
    """Implements MessagePublisher for tests; records (key, payload) pairs."""

    def __init__(
        self,
        state: PublisherState = PublisherState.READY,
        *,
        raise_on_publish: Exception | None = None,
    ) -> None:
        self.state = state
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.raise_on_publish = raise_on_publish
        self.closed = False

    @property
    def ready(self) -> bool:
        return self.state == PublisherState.READY

    async def connect(self) -> None:
        self.state = PublisherState.READY

    async def publish(self, message: dict[str, Any], *, key: str) -> None:
        if self.raise_on_publish is not None:
            raise self.raise_on_publish
        self.published.append((key, message))

    async def close(self) -> None:
        self.closed = True

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [payload for _, payload in self.published]

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.published]


class FakeMessage:
    """Implements IncomingMessage for tests; tracks how the message was settled."""

    def __init__(self, body: bytes | dict[str, Any], key: str | None = None) -> None:
        self._body = json.dumps(body).encode() if isinstance(body, dict) else body
        self._key = key
        self.acked = False
        self.nacked = False
        self.rejected = False
        self.requeue: bool | None = None

    @classmethod
    def for_order(cls, order: Order) -> "FakeMessage":
        return cls(order.to_payload(), key=order.order_id)

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
        self.requeue = requeue

    async def reject(self, *, requeue: bool = False) -> None:
        self.rejected = True
        self.requeue = requeue


class ScriptedFailures:
    """FailureInjector that returns scripted outcomes in order, then `default`."""

    def __init__(self, outcomes: Iterable[bool] = (), *, default: bool = False) -> None:
        self._outcomes = list(outcomes)
        self._default = default
        self.calls: list[str] = []

    def __call__(self, order: Order) -> bool:
        self.calls.append(order.order_id)
        if self._outcomes:
            return self._outcomes.pop(0)
        return self._default


def always_fail(order: Order) -> bool:
    return True


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def publish_failure() -> PublishError:
    return PublishError("broker unavailable")


@pytest.fixture()
def stats_store() -> AggregateStatsStore:
    return AggregateStatsStore()


@pytest.fixture()
def test_app() -> FastAPI:
    app = FastAPI()
    app.state.publisher = FakePublisher()
    app.state.stats_store = AggregateStatsStore()
    app.state.dead_letter_sink = InMemoryDeadLetterSink()
    app.state.stream_aggregator = StreamAggregator(FakePublisher())
    app.include_router(health_router)
    app.include_router(orders_router)
    return app
