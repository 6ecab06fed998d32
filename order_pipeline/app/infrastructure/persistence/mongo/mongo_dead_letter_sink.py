"""MongoDB implementation of DeadLetterSink; escalation history survives restarts."""
from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.domain.models import FailedOrder, Order


class MongoDeadLetterSink:
    """One document per escalation; arrival order is kept by an increasing `seq`."""

    def __init__(self, collection: AsyncIOMotorCollection, *, client: Any | None = None) -> None:
        self._collection = collection
        self._client = client
        self._seq = 0

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes and resume the sequence. Not part of the port."""
        await self._collection.create_index([("seq", ASCENDING)], name="idx_failed_orders_seq")
        await self._collection.create_index("order_id", name="idx_failed_orders_order_id")
        last = await self._collection.find_one({}, sort=[("seq", -1)])
        self._seq = int(last.get("seq", 0)) if last else 0

    async def record(self, order: Order, reason: str) -> FailedOrder:
        failed = FailedOrder.from_order(order, failed_at=datetime.now(timezone.utc), reason=reason)
        self._seq += 1
        await self._collection.insert_one(
            {
                "seq": self._seq,
                "order_id": failed.order_id,
                "product": failed.product,
                "price": failed.price,
                "failed_at": failed.failed_at,
                "reason": failed.reason,
            }
        )
        return failed

    async def list(self) -> list[FailedOrder]:
        docs = await self._collection.find({}).sort("seq", ASCENDING).to_list(length=None)
        return [self._to_failed_order(doc) for doc in docs]

    async def count(self) -> int:
        return int(await self._collection.count_documents({}))

    async def clear(self) -> None:
        await self._collection.delete_many({})

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            res = self._client.close()
            if inspect.isawaitable(res):
                await res

    @staticmethod
    def _to_failed_order(doc: dict[str, Any]) -> FailedOrder:
        failed_at = doc.get("failed_at")
        if isinstance(failed_at, datetime):
            if failed_at.tzinfo is None:
                failed_at = failed_at.replace(tzinfo=timezone.utc)
        else:
            # Documents written outside this sink may lack failed_at; fall back
            # to the ObjectId creation time, or the epoch when there is none.
            object_id = doc.get("_id")
            if isinstance(object_id, ObjectId):
                failed_at = object_id.generation_time
            else:
                failed_at = datetime.fromtimestamp(0, tz=timezone.utc)
            logger.bind(
                service_name=SERVICE_NAME,
                event="dead_letter_missing_failed_at",
                order_id=doc.get("order_id"),
                fallback=failed_at.isoformat(),
            ).warning("")
        return FailedOrder(
            order_id=str(doc.get("order_id", "")),
            product=str(doc.get("product", "")),
            price=float(doc.get("price", 0.0)),
            failed_at=failed_at,
            reason=str(doc.get("reason", "")),
        )
