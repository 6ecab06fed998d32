from datetime import datetime, timezone

import pytest
from bson import ObjectId

from order_pipeline.app.constants import MAX_RETRIES_REACHED
from order_pipeline.app.infrastructure.persistence.mongo.mongo_dead_letter_sink import MongoDeadLetterSink


class _FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self._docs = docs

    def sort(self, key, direction):
        self._docs = sorted(self._docs, key=lambda d: d.get(key, 0), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return list(self._docs)


class _FakeCollection:
    """Implements the motor collection calls MongoDeadLetterSink.list() makes."""

    def __init__(self, docs: list[dict]) -> None:
        self.docs = docs

    def find(self, query):
        return _FakeCursor(self.docs)


def _doc(seq: int, **overrides) -> dict:
    doc = {
        "seq": seq,
        "order_id": f"O{seq}",
        "product": "Mouse",
        "price": 5.0,
        "failed_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        "reason": MAX_RETRIES_REACHED,
    }
    doc.update(overrides)
    return doc


@pytest.mark.asyncio
async def test_list_orders_by_seq():
    sink = MongoDeadLetterSink(_FakeCollection([_doc(2), _doc(1)]))
    assert [f.order_id for f in await sink.list()] == ["O1", "O2"]


@pytest.mark.asyncio
async def test_naive_failed_at_is_treated_as_utc():
    sink = MongoDeadLetterSink(_FakeCollection([_doc(1, failed_at=datetime(2024, 5, 1, 12, 0))]))
    (failed,) = await sink.list()
    assert failed.failed_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_missing_failed_at_falls_back_to_object_id_time():
    object_id = ObjectId.from_datetime(datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    doc = _doc(1, _id=object_id)
    del doc["failed_at"]
    sink = MongoDeadLetterSink(_FakeCollection([doc]))

    (failed,) = await sink.list()

    assert failed.failed_at == datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert failed.to_dict()["failedAt"] == "2023-01-02T03:04:05+00:00"


@pytest.mark.asyncio
async def test_missing_failed_at_without_object_id_uses_epoch():
    sink = MongoDeadLetterSink(_FakeCollection([_doc(1, failed_at=None)]))
    (failed,) = await sink.list()
    assert failed.to_dict()["failedAt"] == "1970-01-01T00:00:00+00:00"
