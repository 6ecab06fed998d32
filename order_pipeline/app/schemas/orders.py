from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_pipeline.app.domain.models import Order


class OrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., min_length=1, alias="orderId")
    product: str = Field(..., min_length=1)
    price: float = Field(..., allow_inf_nan=False)

    @field_validator("order_id", "product")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def to_order(self) -> Order:
        return Order(order_id=self.order_id, product=self.product, price=float(self.price))


class OrderSentResponse(BaseModel):
    message: str
    orderId: str
    product: str
    price: str


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


class StatsResponse(BaseModel):
    totalOrders: int
    totalPrice: str
    runningAverage: str
    failedOrders: int


class FailedOrderPayload(BaseModel):
    orderId: str
    product: str
    price: float
    failedAt: str
    reason: str


class FailedOrdersResponse(BaseModel):
    count: int
    failedOrders: list[FailedOrderPayload]


class ProductAveragesResponse(BaseModel):
    averages: dict[str, float]
