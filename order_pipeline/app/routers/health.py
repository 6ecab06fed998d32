from typing import Any

from fastapi import APIRouter, Request, Response
from loguru import logger

from order_pipeline.app.core import SERVICE_NAME

health_router = APIRouter(tags=["Health"])


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@health_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Returns 200 if the process is running.",
    responses={200: {"description": "Service is alive."}},
)
async def live() -> dict:
    return {"status": "ok"}


@health_router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Returns 200 only when the orders publisher is connected and the pipeline components are wired.",
    responses={
        200: {"description": "Publisher and pipeline are ready."},
        503: {"description": "Publisher or pipeline not ready."},
    },
)
async def ready(request: Request) -> Response:
    publisher = getattr(request.app.state, "publisher", None)
    stats_store = getattr(request.app.state, "stats_store", None)
    dead_letter_sink = getattr(request.app.state, "dead_letter_sink", None)
    if publisher is None or stats_store is None or dead_letter_sink is None:
        _log("components_not_initialized")
        return Response(status_code=503, content="Not ready")
    if not publisher.ready:
        _log("publisher_not_ready")
        return Response(status_code=503, content="Publisher not ready")
    return Response(status_code=200, content="OK")
