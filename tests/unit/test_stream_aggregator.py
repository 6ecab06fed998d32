import pytest

from order_pipeline.app.application.stream_aggregator import StreamAggregator
from order_pipeline.app.domain.models import Order, ProductAverage
from order_pipeline.app.ports.message_publisher import PublishError
from tests.conftest import FakeMessage, FakePublisher


@pytest.mark.asyncio
async def test_running_average_per_product():
    output = FakePublisher()
    aggregator = StreamAggregator(output)

    for i, price in enumerate((10.0, 20.0, 30.0)):
        await aggregator.handle(Order(f"M{i}", "Mouse", price))

    assert output.keys == ["Mouse", "Mouse", "Mouse"]
    assert [p["average"] for p in output.payloads] == pytest.approx([10.0, 15.0, 20.0])
    assert aggregator.averages() == {"Mouse": pytest.approx(20.0)}


@pytest.mark.asyncio
async def test_products_are_aggregated_independently():
    output = FakePublisher()
    aggregator = StreamAggregator(output)

    await aggregator.handle(Order("1", "Mouse", 10.0))
    await aggregator.handle(Order("2", "Laptop", 1000.0))
    emitted = await aggregator.handle(Order("3", "Mouse", 30.0))

    assert emitted == ProductAverage(product="Mouse", average=20.0)
    assert aggregator.averages() == {"Mouse": pytest.approx(20.0), "Laptop": pytest.approx(1000.0)}


@pytest.mark.asyncio
async def test_negative_price_is_dropped_silently():
    output = FakePublisher()
    aggregator = StreamAggregator(output)
    message = FakeMessage({"orderId": "N1", "product": "Mouse", "price": -1.0})

    emitted = await aggregator.process_message(message)

    assert emitted is None
    assert message.acked
    assert output.published == []
    assert aggregator.averages() == {}


@pytest.mark.asyncio
async def test_zero_price_is_included():
    output = FakePublisher()
    aggregator = StreamAggregator(output)
    await aggregator.handle(Order("1", "Cable", 10.0))
    emitted = await aggregator.handle(Order("2", "Cable", 0.0))
    assert emitted is not None
    assert emitted.average == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_emitted_payload_shape():
    output = FakePublisher()
    aggregator = StreamAggregator(output)
    await aggregator.process_message(FakeMessage({"orderId": "1", "product": "Monitor", "price": 250.5, "extra": True}))
    assert output.published == [("Monitor", {"product": "Monitor", "average": 250.5})]


@pytest.mark.asyncio
async def test_failed_emission_leaves_product_aggregate_unchanged():
    output = FakePublisher(raise_on_publish=PublishError("broker unavailable"))
    aggregator = StreamAggregator(output)

    with pytest.raises(PublishError):
        await aggregator.handle(Order("M1", "Mouse", 10.0))
    assert aggregator.averages() == {}

    output.raise_on_publish = None
    emitted = await aggregator.handle(Order("M2", "Mouse", 20.0))

    assert emitted == ProductAverage(product="Mouse", average=20.0)
    assert output.payloads == [{"product": "Mouse", "average": 20.0}]


@pytest.mark.asyncio
async def test_failed_emission_keeps_earlier_folds():
    output = FakePublisher()
    aggregator = StreamAggregator(output)
    await aggregator.handle(Order("M1", "Mouse", 10.0))

    output.raise_on_publish = PublishError("broker unavailable")
    with pytest.raises(PublishError):
        await aggregator.handle(Order("M2", "Mouse", 30.0))

    assert aggregator.averages() == {"Mouse": pytest.approx(10.0)}
    assert output.payloads == [{"product": "Mouse", "average": 10.0}]
