"""End-to-end runs of the wired pipeline on the in-memory broker."""
import pytest

from order_pipeline.app.composition import create_app_dependencies
from order_pipeline.app.config.settings import Settings
from order_pipeline.app.constants import INVALID_PRICE, MAX_RETRIES_REACHED
from order_pipeline.app.domain.models import Order
from tests.conftest import RecordingSleep, ScriptedFailures, always_fail


def _settings(**overrides) -> Settings:
    values = {
        "broker_backend": "inmemory",
        "dead_letter_backend": "memory",
        "max_retry_attempts": 3,
        "retry_backoff_seconds": 0.1,
    }
    values.update(overrides)
    return Settings(**values)


async def _run(deps, *orders: Order) -> None:
    for order in orders:
        await deps.publisher.publish(order.to_payload(), key=order.order_id)
    await deps.broker.drain()


@pytest.mark.asyncio
async def test_order_processed_on_first_attempt():
    deps = create_app_dependencies(
        _settings(),
        primary_failure_injector=ScriptedFailures(),
        retry_failure_injector=ScriptedFailures(),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        await _run(deps, Order("A1", "Laptop", 100.0))

        snapshot = deps.stats_store.snapshot()
        assert snapshot.order_count == 1
        assert snapshot.running_average == pytest.approx(100.0)
        assert await deps.dead_letter_sink.count() == 0
        assert deps.stream_aggregator.averages() == {"Laptop": pytest.approx(100.0)}
        aggregated = deps.broker.published(deps.settings.aggregated_channel)
        assert [m.key for m in aggregated] == ["Laptop"]
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_always_failing_order_is_dead_lettered_after_max_attempts():
    sleep = RecordingSleep()
    deps = create_app_dependencies(
        _settings(),
        primary_failure_injector=always_fail,
        retry_failure_injector=always_fail,
        retry_sleep=sleep,
    )
    await deps.connect()
    await deps.start()
    try:
        await _run(deps, Order("A1", "Laptop", 50.0))

        failed = await deps.dead_letter_sink.list()
        assert [(f.order_id, f.reason) for f in failed] == [("A1", MAX_RETRIES_REACHED)]
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.3])
        assert len(deps.broker.published(deps.settings.retry_channel)) == 3
        assert "A1" not in deps.retry_processor.attempts
        assert deps.stats_store.snapshot().order_count == 0
        # the stream pipeline still counts the valid order
        assert deps.stream_aggregator.averages() == {"Laptop": pytest.approx(50.0)}
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_recovered_order_counts_once():
    deps = create_app_dependencies(
        _settings(max_retry_attempts=5),
        primary_failure_injector=ScriptedFailures([True]),
        retry_failure_injector=ScriptedFailures([True, False]),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        await _run(deps, Order("A1", "Laptop", 100.0))

        snapshot = deps.stats_store.snapshot()
        assert snapshot.order_count == 1
        assert snapshot.total_price == pytest.approx(100.0)
        assert snapshot.running_average == pytest.approx(100.0)
        assert len(deps.broker.published(deps.settings.retry_channel)) == 2
        assert await deps.dead_letter_sink.count() == 0
        assert len(deps.retry_processor.attempts) == 0
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_negative_price_is_dead_lettered_and_skipped_by_stream():
    deps = create_app_dependencies(
        _settings(),
        primary_failure_injector=ScriptedFailures(),
        retry_failure_injector=ScriptedFailures(),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        await _run(deps, Order("N1", "Mouse", -1.0), Order("M1", "Mouse", 10.0))

        failed = await deps.dead_letter_sink.list()
        assert [(f.order_id, f.reason) for f in failed] == [("N1", INVALID_PRICE)]
        assert deps.broker.published(deps.settings.retry_channel) == []
        assert deps.stream_aggregator.averages() == {"Mouse": pytest.approx(10.0)}
        assert deps.stats_store.snapshot().order_count == 1
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_malformed_message_is_rejected_and_pipeline_continues():
    deps = create_app_dependencies(
        _settings(),
        primary_failure_injector=ScriptedFailures(),
        retry_failure_injector=ScriptedFailures(),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        await deps.publisher.publish({"orderId": "bad"}, key="bad")
        await _run(deps, Order("A1", "Laptop", 10.0))

        assert deps.stats_store.snapshot().order_count == 1
        assert await deps.dead_letter_sink.count() == 0
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_many_orders_sum_matches_processed_set():
    deps = create_app_dependencies(
        _settings(max_retry_attempts=2),
        primary_failure_injector=ScriptedFailures([True, False] * 10),
        retry_failure_injector=ScriptedFailures([True, False] * 10),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        orders = [Order(f"O{i}", "Keyboard", float(i)) for i in range(1, 21)]
        await _run(deps, *orders)

        failed = {f.order_id for f in await deps.dead_letter_sink.list()}
        processed_total = sum(o.price for o in orders if o.order_id not in failed)
        snapshot = deps.stats_store.snapshot()
        assert snapshot.order_count + len(failed) == len(orders)
        assert snapshot.total_price == pytest.approx(processed_total)
    finally:
        await deps.close()


@pytest.mark.asyncio
async def test_broker_history_stays_bounded_under_load():
    deps = create_app_dependencies(
        _settings(inmemory_history_limit=50),
        primary_failure_injector=ScriptedFailures(),
        retry_failure_injector=ScriptedFailures(),
        retry_sleep=RecordingSleep(),
    )
    await deps.connect()
    await deps.start()
    try:
        await _run(deps, *(Order(f"O{i}", "Mouse", 1.0) for i in range(500)))

        assert deps.stats_store.snapshot().order_count == 500
        assert len(deps.broker.published(deps.settings.orders_channel)) == 50
        assert len(deps.broker.published(deps.settings.aggregated_channel)) == 50
    finally:
        await deps.close()
