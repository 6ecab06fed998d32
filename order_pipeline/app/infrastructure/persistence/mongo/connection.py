"""Opens the Mongo collection that backs the durable dead-letter sink."""
from __future__ import annotations

from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from order_pipeline.app.config.settings import Settings
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.core.backoff import exponential_backoff


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def mongo_uri(settings: Settings) -> str:
    host = f"{settings.database_host}:{settings.database_port}"
    if settings.database_user and settings.database_password:
        return f"mongodb://{settings.database_user}:{settings.database_password}@{host}"
    return f"mongodb://{host}"


async def open_dead_letter_collection(
    settings: Settings,
) -> tuple[AsyncIOMotorClient, AsyncIOMotorCollection]:
    """Ping Mongo with backoff; return the live client and the dead-letter collection.

    The caller owns the client and must close it.
    """
    attempt = 0
    async for delay in exponential_backoff(
        settings.initial_backoff_seconds,
        settings.max_backoff_seconds,
        settings.backoff_multiplier,
        settings.max_connection_attempts,
    ):
        attempt += 1
        _log("mongo_connect_attempt", attempt=attempt, delay=delay, database=settings.database_name)
        client = AsyncIOMotorClient(
            mongo_uri(settings),
            serverSelectionTimeoutMS=settings.database_connection_timeout_ms,
            appname=SERVICE_NAME,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            client.close()
            logger.warning("mongo connect failed: {}", exc)
            if attempt >= settings.max_connection_attempts:
                raise
            continue
        _log(
            "mongo_connected",
            database=settings.database_name,
            collection=settings.dead_letter_collection,
        )
        return client, client[settings.database_name][settings.dead_letter_collection]
    raise RuntimeError("mongo connect failed")
