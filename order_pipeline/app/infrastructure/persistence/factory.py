"""Dead-letter sink factory: selects and assembles persistence adapters."""
from __future__ import annotations

from order_pipeline.app.config.settings import Settings
from order_pipeline.app.infrastructure.persistence.memory.in_memory_dead_letter_sink import (
    InMemoryDeadLetterSink,
)
from order_pipeline.app.infrastructure.persistence.mongo.connection import open_dead_letter_collection
from order_pipeline.app.infrastructure.persistence.mongo.mongo_dead_letter_sink import MongoDeadLetterSink
from order_pipeline.app.ports.dead_letter_sink import DeadLetterSink


async def create_dead_letter_sink(settings: Settings) -> DeadLetterSink:
    """Select sink adapter from configuration and return port type."""
    backend = settings.dead_letter_backend.strip().lower()

    if backend in ("memory", "inmemory"):
        return InMemoryDeadLetterSink()

    if backend == "mongo":
        client, collection = await open_dead_letter_collection(settings)
        sink = MongoDeadLetterSink(collection, client=client)
        try:
            await sink.ensure_indexes()
        except Exception:
            await sink.close()
            raise
        return sink

    raise ValueError(f"Unsupported dead letter backend: {backend}")
