"""
FastAPI application entry point for the order reliability pipeline.

The lifespan builds the pipeline through the composition root, starts every
consumer group, and exposes the producer, stats store, dead-letter sink and
stream aggregator on app.state for the routers.
"""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from loguru import logger

from order_pipeline.app.composition import create_app_dependencies
from order_pipeline.app.config.settings import Settings
from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.routers.health import health_router
from order_pipeline.app.routers.orders import orders_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.bind(service_name=SERVICE_NAME, event="pipeline_starting").info("")
    dependencies = create_app_dependencies(getattr(app.state, "settings", None))
    try:
        await dependencies.connect()
    except Exception as e:
        logger.exception("pipeline connect failed: {}", e)
        raise

    try:
        await dependencies.start()
        app.state.settings = dependencies.settings
        app.state.dependencies = dependencies
        app.state.publisher = dependencies.publisher
        app.state.stats_store = dependencies.stats_store
        app.state.dead_letter_sink = dependencies.dead_letter_sink
        app.state.stream_aggregator = dependencies.stream_aggregator
        yield
    finally:
        logger.bind(service_name=SERVICE_NAME, event="pipeline_stopping").info("")
        await dependencies.close()


app = FastAPI(
    title="Order Reliability Pipeline",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(orders_router)


def main() -> None:
    settings = Settings()
    app.state.settings = settings
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
