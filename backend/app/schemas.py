"""
Request and response schemas for the orders API.

JSON on the wire is camelCase (``customerId``, ``orderStatus``); Python code
uses snake_case attribute names. Models read straight from ORM objects
(``from_attributes``) so routes can return ``OrderPublic.model_validate(order)``.
"""

import uuid
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models import OrderStatus, PaymentStatus

TData = TypeVar("TData")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# CHECKOUT INPUT


class ShippingAddress(CamelModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip: str = Field(min_length=1)
    country: str = Field(min_length=1)


class CheckoutItem(CamelModel):
    product_id: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    seller_id: str | None = None
    # Computed as price * quantity when absent
    subtotal: float | None = Field(default=None, ge=0)


class CheckoutCreate(CamelModel):
    """Checkout submitted by the storefront; totals are already computed upstream"""

    customer_id: str = Field(min_length=1)
    customer_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    items: list[CheckoutItem] = Field(min_length=1)
    subtotal: float = Field(ge=0)
    tax: float = Field(default=0, ge=0)
    shipping: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    coupon_code: str | None = None
    total: float | None = Field(default=None, ge=0)
    payment_method: str = Field(min_length=1)
    shipping_address: ShippingAddress
    notes: str | None = None


# STATUS INPUT


class StatusUpdate(CamelModel):
    order_status: OrderStatus
    reason: str | None = None

    @field_validator("order_status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value


class CancelRequest(CamelModel):
    reason: str | None = None


class PaymentUpdate(CamelModel):
    payment_status: PaymentStatus
    reason: str | None = None

    @field_validator("payment_status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value


# ORDER OUTPUT


class OrderItemPublic(CamelModel):
    product_id: str
    product_name: str
    quantity: int
    price: float
    seller_id: str | None
    subtotal: float


class OrderPublic(CamelModel):
    id: uuid.UUID
    order_number: str
    checkout_id: uuid.UUID | None
    customer_id: str
    customer_email: str
    seller_id: str | None
    items: list[OrderItemPublic] = []
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    coupon_code: str | None
    order_status: str
    payment_status: str
    payment_method: str
    shipping_address: dict[str, Any]
    notes: str | None
    created_at: datetime
    updated_at: datetime


class SellerOrderPublic(OrderPublic):
    """Order as seen by one seller: only that seller's items, plus share figures"""

    seller_subtotal: float
    seller_item_count: int
    total_item_count: int
    is_multi_seller_order: bool


class AuditEntryPublic(CamelModel):
    id: uuid.UUID
    order_id: uuid.UUID
    kind: str
    operation: str
    from_status: str | None
    to_status: str
    off_graph: bool
    actor_id: str
    actor_role: str
    reason: str | None
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


# SETTLEMENT OUTPUT


class SellerStats(CamelModel):
    total_revenue: float = 0
    total_orders: int = 0
    pending_orders: int = 0
    completed_orders: int = 0
    processing_orders: int = 0
    completion_rate: float = 0
    avg_order_value: float = 0
    success_rate: float = 0


class MonthlyEarnings(CamelModel):
    period: str  # "January 2025"
    month_key: str  # "2025-01"
    revenue: float
    orders: int
    commission: float
    payout: float


class EarningsSummary(CamelModel):
    total_revenue: float
    total_orders: int
    total_commission: float
    total_payout: float
    commission_rate: float


class SellerEarnings(CamelModel):
    summary: EarningsSummary
    monthly_earnings: list[MonthlyEarnings]


class PlatformStats(CamelModel):
    total_orders: int = 0
    total_revenue: float = 0
    pending_orders: int = 0
    completed_orders: int = 0
    processing_orders: int = 0
    cancelled_orders: int = 0


# RESPONSE ENVELOPES


class OrderData(CamelModel):
    order: OrderPublic


class CheckoutData(CamelModel):
    order: OrderPublic
    orders: list[OrderPublic]
    order_count: int
    checkout_id: uuid.UUID | None = None


class OrderListData(CamelModel):
    orders: list[OrderPublic]
    pagination: Pagination


class SellerOrderListData(CamelModel):
    orders: list[SellerOrderPublic]
    pagination: Pagination


class AuditData(CamelModel):
    entries: list[AuditEntryPublic]


class ApiResponse(CamelModel, Generic[TData]):
    success: bool = True
    data: TData
    message: str | None = None
