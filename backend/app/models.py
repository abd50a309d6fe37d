import uuid
from enum import Enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, JSON
from sqlmodel import Field, SQLModel, Column, String, Relationship


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# Seller grouping key for checkout items that carry no sellerId
DEFAULT_SELLER_BUCKET = "default"


class _UpperCaseEnum(str, Enum):
    @classmethod
    def parse(cls, value: Any):
        """
        Normalize a stored or submitted status to the enum.

        Accepts any casing and surrounding whitespace ("shipped", " Shipped ").

        Raises:
            ValueError: if the value is not a known status
        """
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class OrderStatus(_UpperCaseEnum):
    """Fulfillment lifecycle states"""

    PENDING = "PENDING"  # Order created
    CONFIRMED = "CONFIRMED"  # Accepted by the seller
    PROCESSING = "PROCESSING"  # Being prepared
    SHIPPED = "SHIPPED"  # Handed to the carrier
    DELIVERED = "DELIVERED"  # Terminal
    CANCELLED = "CANCELLED"  # Terminal


class PaymentStatus(_UpperCaseEnum):
    """Payment states as reported by callers (not verified against a processor)"""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    REFUNDED = "REFUNDED"


class SplitStatus(_UpperCaseEnum):
    """Saga marker states for a multi-seller checkout"""

    PENDING_SPLIT = "PENDING_SPLIT"  # Seller orders are being written
    COMPLETED = "COMPLETED"  # Every seller order exists
    ROLLED_BACK = "ROLLED_BACK"  # Partial split compensated (orders cancelled)


class AuditKind(str, Enum):
    ORDER_STATUS = "order_status"
    PAYMENT_STATUS = "payment_status"


class AuditOperation(str, Enum):
    CANCEL = "cancel"
    TRANSITION = "transition"
    OVERRIDE = "override"
    PAYMENT = "payment"
    ROLLBACK = "rollback"


# ORDER MODELS


class Order(SQLModel, table=True):
    """
    Order document.

    The order row and its items are written together in one commit; nothing
    else holds or mutates them outside an OrderStore call.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_number: str = Field(index=True, unique=True)
    checkout_id: uuid.UUID | None = Field(default=None, index=True)

    customer_id: str = Field(index=True)
    customer_email: str
    seller_id: str | None = Field(default=None, index=True)

    # Money, rounded to 2 decimals
    subtotal: float
    tax: float = 0
    shipping: float = 0
    discount: float = 0
    total: float
    coupon_code: str | None = Field(default=None)

    order_status: str = Field(
        default=OrderStatus.PENDING.value,
        sa_column=Column(String, nullable=False, index=True),
    )
    payment_status: str = Field(
        default=PaymentStatus.PENDING.value,
        sa_column=Column(String, nullable=False),
    )
    payment_method: str
    shipping_address: dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    notes: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),
    )

    items: list["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={
            "lazy": "selectin",
            "order_by": "OrderItem.position",
            "cascade": "all, delete-orphan",
        },
    )


class OrderItem(SQLModel, table=True):
    """Line item embedded in an Order (price and name are order-time snapshots)"""

    __tablename__ = "order_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID | None = Field(
        default=None, foreign_key="orders.id", index=True
    )
    position: int = 0

    product_id: str
    product_name: str
    quantity: int
    price: float
    seller_id: str | None = Field(default=None, index=True)
    subtotal: float

    order: Order | None = Relationship(back_populates="items")


# SPLIT SAGA


class CheckoutSplit(SQLModel, table=True):
    """
    Marker written before the seller orders of a multi-seller checkout.

    Stays PENDING_SPLIT until every order is written; the reconciliation sweep
    resolves markers left behind by failed or interrupted checkouts.
    """

    __tablename__ = "checkout_splits"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    customer_id: str = Field(index=True)
    status: str = Field(
        default=SplitStatus.PENDING_SPLIT.value,
        sa_column=Column(String, nullable=False, index=True),
    )
    expected_orders: int
    order_numbers: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    last_error: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=get_datetime_utc, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(
        default_factory=get_datetime_utc, sa_type=DateTime(timezone=True)
    )


# AUDIT TRAIL


class OrderAuditEntry(SQLModel, table=True):
    """One status or payment write, with who made it and whether it left the graph"""

    __tablename__ = "order_audit_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID = Field(index=True)
    kind: str
    operation: str
    from_status: str | None = Field(default=None)
    to_status: str
    off_graph: bool = False
    actor_id: str
    actor_role: str
    reason: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=get_datetime_utc, sa_type=DateTime(timezone=True)
    )
