"""Messaging factory: selects publisher/consumer implementation from config.

Only place that imports concrete broker adapters.
"""
from __future__ import annotations

from order_pipeline.app.config.settings import Settings
from order_pipeline.app.infrastructure.messaging.inmemory.broker import InMemoryBroker
from order_pipeline.app.infrastructure.messaging.inmemory.in_memory_consumer import InMemoryConsumer
from order_pipeline.app.infrastructure.messaging.inmemory.in_memory_publisher import InMemoryPublisher
from order_pipeline.app.infrastructure.messaging.rabbitmq.rabbitmq_consumer import RabbitMQConsumer
from order_pipeline.app.infrastructure.messaging.rabbitmq.rabbitmq_publisher import RabbitMQPublisher
from order_pipeline.app.ports.message_consumer import MessageConsumer
from order_pipeline.app.ports.message_publisher import MessagePublisher


def _backend(settings: Settings) -> str:
    return settings.broker_backend.strip().lower()


def create_broker(settings: Settings) -> InMemoryBroker | None:
    """Shared in-process broker for the inmemory backend; None for network brokers."""
    if _backend(settings) == "inmemory":
        return InMemoryBroker(history_limit=settings.inmemory_history_limit)
    return None


def create_message_publisher(
    settings: Settings,
    channel_name: str,
    *,
    broker: InMemoryBroker | None = None,
) -> MessagePublisher:
    backend = _backend(settings)

    if backend == "rabbitmq":
        return RabbitMQPublisher(settings, channel_name)

    if backend == "inmemory":
        if broker is None:
            raise ValueError("inmemory publisher requires a shared InMemoryBroker")
        return InMemoryPublisher(broker, channel_name)

    raise ValueError(f"Unsupported broker backend: {backend}")


def create_message_consumer(
    settings: Settings,
    channel_name: str,
    group: str,
    *,
    broker: InMemoryBroker | None = None,
) -> MessageConsumer:
    backend = _backend(settings)

    if backend == "rabbitmq":
        return RabbitMQConsumer(settings, channel_name, group)

    if backend == "inmemory":
        if broker is None:
            raise ValueError("inmemory consumer requires a shared InMemoryBroker")
        return InMemoryConsumer(broker, channel_name, group)

    raise ValueError(f"Unsupported broker backend: {backend}")
