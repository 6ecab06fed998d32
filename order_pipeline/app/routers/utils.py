from __future__ import annotations

from typing import Any

from fastapi import Request, Response
from loguru import logger
from pydantic import BaseModel

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.schemas.orders import ErrorResponse


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def json_response(model: BaseModel, *, status_code: int = 200) -> Response:
    return Response(
        status_code=status_code,
        media_type="application/json",
        content=model.model_dump_json(),
    )


def error_response(status_code: int, error: str) -> Response:
    return json_response(ErrorResponse(error=error), status_code=status_code)


def state_component(request: Request, name: str) -> Any | None:
    """Read a wired component from app.state; None when the app was started without it."""
    return getattr(request.app.state, name, None)


def unavailable(component: str) -> Response:
    _log("component_unavailable", component=component)
    return error_response(503, f"{component} not available")


__all__ = [
    "json_response",
    "error_response",
    "state_component",
    "unavailable",
]
