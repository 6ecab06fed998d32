import asyncio

import pytest

from order_pipeline.app.messaging.consumer import create_message_handler
from order_pipeline.app.ports.message_publisher import PublishError
from tests.conftest import FakeMessage


@pytest.mark.asyncio
async def test_successful_processing_records_no_error():
    errors: asyncio.Queue[Exception] = asyncio.Queue()
    seen: list[bytes] = []

    async def process(message):
        seen.append(message.body)
        await message.ack()

    handler = create_message_handler(process, errors, asyncio.Lock(), group="primary")
    message = FakeMessage({"orderId": "A1", "product": "Laptop", "price": 1.0})
    await handler(message)

    assert message.acked
    assert len(seen) == 1
    assert errors.empty()


@pytest.mark.asyncio
async def test_failure_rejects_without_requeue_and_queues_error():
    errors: asyncio.Queue[Exception] = asyncio.Queue()

    async def process(message):
        raise PublishError("broker unavailable")

    handler = create_message_handler(process, errors, asyncio.Lock(), group="retry")
    message = FakeMessage(b"{}")
    await handler(message)

    assert message.rejected
    assert message.requeue is False
    error = errors.get_nowait()
    assert isinstance(error, PublishError)


@pytest.mark.asyncio
async def test_failure_after_settlement_does_not_settle_twice():
    errors: asyncio.Queue[Exception] = asyncio.Queue()

    async def process(message):
        await message.ack()
        raise ValueError("late failure")

    handler = create_message_handler(process, errors, asyncio.Lock(), group="primary")
    message = FakeMessage(b"{}")
    await handler(message)

    assert message.acked
    assert not message.rejected
    assert errors.qsize() == 1


@pytest.mark.asyncio
async def test_messages_are_processed_one_at_a_time():
    errors: asyncio.Queue[Exception] = asyncio.Queue()
    active = 0
    max_active = 0

    async def process(message):
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0)
        active -= 1
        await message.ack()

    handler = create_message_handler(process, errors, asyncio.Lock(), group="retry")
    await asyncio.gather(*(handler(FakeMessage(b"{}")) for _ in range(5)))
    assert max_active == 1
