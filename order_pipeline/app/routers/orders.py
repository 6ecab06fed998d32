from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from loguru import logger

from order_pipeline.app.core import SERVICE_NAME
from order_pipeline.app.routers.utils import (
    error_response,
    json_response,
    state_component,
    unavailable,
)
from order_pipeline.app.schemas.orders import (
    FailedOrderPayload,
    FailedOrdersResponse,
    MessageResponse,
    OrderRequest,
    OrderSentResponse,
    ProductAveragesResponse,
    StatsResponse,
)
from order_pipeline.app.services.order_producer import (
    EnqueueOrderOutcome,
    send_random_orders,
    send_specific_order,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


orders_router = APIRouter(prefix="/api/orders", tags=["Orders"])


def _publish_failed(outcome: EnqueueOrderOutcome) -> Response:
    _log("publish_failed", reason=outcome.error, published=len(outcome.orders))
    return error_response(503, outcome.error or "Publish failed")


@orders_router.post(
    "",
    summary="Send one order",
    description="Publishes the given order to the orders channel.",
    responses={
        200: {"description": "Order published."},
        422: {"description": "Invalid order body."},
        503: {"description": "Publisher unavailable or publish failed."},
    },
)
async def send_order(request: Request, body: OrderRequest) -> Response:
    publisher = state_component(request, "publisher")
    if publisher is None:
        return unavailable("Publisher")

    outcome = await send_specific_order(body.to_order(), publisher)
    if not outcome.success or outcome.order is None:
        return _publish_failed(outcome)

    order = outcome.order
    return json_response(
        OrderSentResponse(
            message="Order sent successfully",
            orderId=order.order_id,
            product=order.product,
            price=f"{order.price:.2f}",
        )
    )


@orders_router.post(
    "/send",
    summary="Send one random order",
    description="Publishes one synthetic order with a catalog product and a random price.",
    responses={
        200: {"description": "Order published."},
        503: {"description": "Publisher unavailable or publish failed."},
    },
)
async def send_random_order(request: Request) -> Response:
    publisher = state_component(request, "publisher")
    if publisher is None:
        return unavailable("Publisher")

    outcome = await send_random_orders(1, publisher)
    if not outcome.success or outcome.order is None:
        return _publish_failed(outcome)

    order = outcome.order
    return json_response(
        OrderSentResponse(
            message="Random order sent successfully",
            orderId=order.order_id,
            product=order.product,
            price=f"{order.price:.2f}",
        )
    )


@orders_router.post(
    "/send-multiple",
    summary="Send a batch of random orders",
    description="Publishes `count` synthetic orders (1 to 1000, default 10).",
    responses={
        200: {"description": "Orders published."},
        400: {"description": "Count out of range."},
        503: {"description": "Publisher unavailable or publish failed."},
    },
)
async def send_multiple_orders(request: Request, count: int = 10) -> Response:
    publisher = state_component(request, "publisher")
    if publisher is None:
        return unavailable("Publisher")

    try:
        outcome = await send_random_orders(count, publisher)
    except ValueError as e:
        return error_response(400, str(e))
    if not outcome.success:
        return _publish_failed(outcome)

    return json_response(MessageResponse(message=f"Sent {len(outcome.orders)} orders successfully"))


@orders_router.get(
    "/stats",
    summary="Aggregate statistics",
    description="Returns order count, total price and running average of processed orders, plus the dead-letter count.",
    responses={
        200: {"description": "Current statistics."},
        503: {"description": "Stats store or dead-letter sink unavailable."},
    },
)
async def get_stats(request: Request) -> Response:
    stats_store = state_component(request, "stats_store")
    sink = state_component(request, "dead_letter_sink")
    if stats_store is None or sink is None:
        return unavailable("Stats")

    snapshot = stats_store.snapshot()
    try:
        failed = await sink.count()
    except Exception as e:
        _log("failed_orders_count_error", error=str(e))
        return error_response(503, "Dead-letter store unavailable")

    return json_response(
        StatsResponse(
            totalOrders=snapshot.order_count,
            totalPrice=f"{snapshot.total_price:.2f}",
            runningAverage=f"{snapshot.running_average:.2f}",
            failedOrders=failed,
        )
    )


@orders_router.get(
    "/failed",
    summary="Dead-lettered orders",
    description="Lists every order recorded by the dead-letter consumer, oldest first.",
    responses={
        200: {"description": "Dead-lettered orders."},
        503: {"description": "Dead-letter sink unavailable."},
    },
)
async def get_failed_orders(request: Request) -> Response:
    sink = state_component(request, "dead_letter_sink")
    if sink is None:
        return unavailable("Dead-letter store")

    try:
        failed_orders = await sink.list()
    except Exception as e:
        _log("failed_orders_list_error", error=str(e))
        return error_response(503, "Dead-letter store unavailable")

    return json_response(
        FailedOrdersResponse(
            count=len(failed_orders),
            failedOrders=[FailedOrderPayload(**failed.to_dict()) for failed in failed_orders],
        )
    )


@orders_router.get(
    "/averages",
    summary="Per-product running averages",
    description="Latest streaming average price per product.",
    responses={
        200: {"description": "Averages keyed by product."},
        503: {"description": "Stream aggregator unavailable."},
    },
)
async def get_product_averages(request: Request) -> Response:
    aggregator = state_component(request, "stream_aggregator")
    if aggregator is None:
        return unavailable("Stream aggregator")
    return json_response(ProductAveragesResponse(averages=aggregator.averages()))


@orders_router.delete(
    "/stats/reset",
    summary="Reset statistics",
    description="Zeroes the aggregate statistics and clears the dead-letter store.",
    responses={
        200: {"description": "Statistics reset."},
        503: {"description": "Stats store or dead-letter sink unavailable."},
    },
)
async def reset_stats(request: Request) -> Response:
    stats_store = state_component(request, "stats_store")
    sink = state_component(request, "dead_letter_sink")
    if stats_store is None or sink is None:
        return unavailable("Stats")

    stats_store.reset()
    try:
        await sink.clear()
    except Exception as e:
        _log("failed_orders_clear_error", error=str(e))
        return error_response(503, "Dead-letter store unavailable")

    _log("stats_reset")
    return json_response(MessageResponse(message="Statistics reset successfully"))
