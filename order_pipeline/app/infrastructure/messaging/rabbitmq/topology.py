"""Channel topology on RabbitMQ.

Each logical channel is a durable fanout exchange. Every consumer group gets
its own durable queue named `<channel>.<group>` bound to that exchange, so
the orders channel fans out to the primary processor and the stream
aggregator independently.
"""
from __future__ import annotations

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractQueue

from order_pipeline.app.config.settings import Settings


def build_amqp_url(settings: Settings) -> str:
    return (
        f"amqp://{settings.broker_user}:{settings.broker_password}"
        f"@{settings.broker_host}:{settings.broker_port}/"
    )


def group_queue_name(channel_name: str, group: str) -> str:
    return f"{channel_name}.{group}"


async def declare_channel_exchange(channel: AbstractChannel, channel_name: str) -> AbstractExchange:
    return await channel.declare_exchange(
        channel_name,
        aio_pika.ExchangeType.FANOUT,
        durable=True,
    )


async def declare_group_queue(
    channel: AbstractChannel,
    exchange: AbstractExchange,
    channel_name: str,
    group: str,
    settings: Settings,
) -> AbstractQueue:
    queue = await channel.declare_queue(
        group_queue_name(channel_name, group),
        durable=True,
        arguments={
            "x-max-length": settings.queue_max_length,
            "x-overflow": "reject-publish",
        },
    )
    await queue.bind(exchange)
    return queue
