import random

import pytest

from order_pipeline.app.constants import PRODUCT_CATALOG
from order_pipeline.app.domain.models import Order
from order_pipeline.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from order_pipeline.app.services.order_producer import (
    create_random_order,
    send_random_orders,
    send_specific_order,
    validate_batch_count,
)
from tests.conftest import FakePublisher, publish_failure


def test_random_order_uses_catalog_and_price_range():
    rng = random.Random(7)
    for _ in range(50):
        order = create_random_order(rng)
        assert order.product in PRODUCT_CATALOG
        assert 10.0 <= order.price <= 1000.0
        assert order.price == round(order.price, 2)
        assert order.order_id


def test_random_orders_get_unique_ids():
    ids = {create_random_order().order_id for _ in range(100)}
    assert len(ids) == 100


@pytest.mark.parametrize("count", [0, -1, 1001])
def test_validate_batch_count_rejects_out_of_range(count):
    with pytest.raises(ValueError, match="Count must be between 1 and 1000"):
        validate_batch_count(count)


@pytest.mark.asyncio
async def test_send_specific_order_publishes_keyed_payload():
    publisher = FakePublisher()
    outcome = await send_specific_order(Order("A1", "Laptop", 5.0), publisher)
    assert outcome.success
    assert outcome.order == Order("A1", "Laptop", 5.0)
    assert publisher.published == [("A1", {"orderId": "A1", "product": "Laptop", "price": 5.0})]


@pytest.mark.asyncio
async def test_send_random_orders_publishes_count():
    publisher = FakePublisher()
    outcome = await send_random_orders(3, publisher, rng=random.Random(1))
    assert outcome.success
    assert len(outcome.orders) == 3
    assert publisher.keys == [o.order_id for o in outcome.orders]


@pytest.mark.asyncio
async def test_not_ready_publisher_fails_without_publishing():
    publisher = FakePublisher(state=PublisherState.RECONNECTING)
    outcome = await send_specific_order(Order("A1", "Laptop", 5.0), publisher)
    assert not outcome.success
    assert outcome.error == "publisher_not_ready"
    assert publisher.published == []


@pytest.mark.asyncio
async def test_publish_error_is_reported_in_outcome():
    publisher = FakePublisher(raise_on_publish=publish_failure())
    outcome = await send_random_orders(2, publisher)
    assert not outcome.success
    assert outcome.orders == ()
    assert "broker unavailable" in outcome.error
