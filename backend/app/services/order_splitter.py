"""
Checkout splitting: one checkout in, one order per seller out.

Shared costs (tax, shipping, discount) are allocated to each seller order in
proportion to that seller's share of the cart subtotal, each figure rounded
to cents independently. Item subtotals are grouped, never re-derived, so the
seller subtotals add back up to the cart subtotal.

The N order writes are not transactional. They run as a small saga:

1. write a CheckoutSplit marker in PENDING_SPLIT
2. write the seller orders one by one
3. mark the split COMPLETED

If a write fails part way, the orders already written are cancelled and the
marker set ROLLED_BACK before the error propagates. Anything this process
could not finish (crash, compensation failure) stays PENDING_SPLIT and is
resolved later by SplitReconciler.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import uuid

from app.core.errors import OrderValidationError, StoreError
from app.core.logging import get_logger
from app.core.metrics import (
    checkout_split_size,
    checkout_splits_total,
    order_status_changes_total,
    orders_created_total,
    split_reconciliation_total,
)
from app.core.security import SYSTEM_CALLER
from app.models import (
    DEFAULT_SELLER_BUCKET,
    AuditKind,
    AuditOperation,
    CheckoutSplit,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    SplitStatus,
    get_datetime_utc,
)
from app.repositories.order_store import OrderQuery, OrderStore
from app.schemas import CheckoutCreate, CheckoutItem
from app.services.audit import record_status_change
from app.services.money import round_money
from app.services.order_numbers import OrderNumberSequence, format_order_number
from app.services.order_status import can_transition, stored_status

logger = get_logger(__name__)

LAST_ERROR_MAX_LENGTH = 500


@dataclass
class SellerAllocation:
    """Money figures for one seller's slice of a checkout"""

    seller_key: str
    items: list[CheckoutItem]
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float

    @property
    def seller_id(self) -> str | None:
        return None if self.seller_key == DEFAULT_SELLER_BUCKET else self.seller_key


@dataclass
class SplitResult:
    orders: list[Order]
    checkout_id: uuid.UUID | None = None

    @property
    def order(self) -> Order:
        # Callers that predate splitting expect exactly one order
        return self.orders[0]

    @property
    def order_count(self) -> int:
        return len(self.orders)


@dataclass
class ReconcileReport:
    completed: int = 0
    rolled_back: int = 0
    failed: list[uuid.UUID] = field(default_factory=list)


def item_subtotal(item: CheckoutItem) -> float:
    if item.subtotal is not None:
        return item.subtotal
    return round_money(item.price * item.quantity)


def group_items_by_seller(items: list[CheckoutItem]) -> dict[str, list[CheckoutItem]]:
    """Group items by sellerId in first-seen order; missing sellers share one bucket."""
    groups: dict[str, list[CheckoutItem]] = {}
    for item in items:
        groups.setdefault(item.seller_id or DEFAULT_SELLER_BUCKET, []).append(item)
    return groups


def allocate_shared_costs(
    checkout: CheckoutCreate, groups: dict[str, list[CheckoutItem]]
) -> list[SellerAllocation]:
    """
    Split tax, shipping and discount across seller groups by subtotal share.

    A zero cart subtotal (all items free) splits the shared costs evenly.
    Per-order rounding means the allocated tax may differ from the cart tax
    by up to one cent per extra order.
    """
    allocations = []
    for seller_key, items in groups.items():
        seller_subtotal = round_money(sum(item_subtotal(item) for item in items))
        if checkout.subtotal > 0:
            proportion = seller_subtotal / checkout.subtotal
        else:
            proportion = 1 / len(groups)

        tax = round_money(checkout.tax * proportion)
        shipping = round_money(checkout.shipping * proportion)
        discount = round_money(checkout.discount * proportion)
        allocations.append(
            SellerAllocation(
                seller_key=seller_key,
                items=items,
                subtotal=seller_subtotal,
                tax=tax,
                shipping=shipping,
                discount=discount,
                total=round_money(seller_subtotal + tax + shipping - discount),
            )
        )
    return allocations


def validate_checkout(checkout: CheckoutCreate) -> None:
    """
    Reject blank required fields that pass schema validation (e.g. "  ").

    Raises:
        OrderValidationError: with a field -> message map in ``context["errors"]``
    """
    errors: dict[str, str] = {}
    for name in ("customer_id", "customer_email", "payment_method"):
        if not getattr(checkout, name).strip():
            errors[name] = "required"
    for name, value in checkout.shipping_address.model_dump().items():
        if not value.strip():
            errors[f"shipping_address.{name}"] = "required"
    if not checkout.items:
        errors["items"] = "At least one item is required"
    for index, item in enumerate(checkout.items):
        if not item.product_id.strip():
            errors[f"items[{index}].product_id"] = "required"
        if not item.product_name.strip():
            errors[f"items[{index}].product_name"] = "required"

    if errors:
        raise OrderValidationError("Invalid checkout", errors=errors)


def split_note(notes: str | None, seller_key: str) -> str:
    marker = f"Split order for seller: {seller_key}"
    return f"{notes} ({marker})" if notes else marker


def _append_note(notes: str | None, line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def roll_back_split(
    store: OrderStore,
    split_id: uuid.UUID,
    orders: list[Order],
    reason: str,
    clock: Callable[[], datetime] = get_datetime_utc,
) -> bool:
    """
    Cancel the orders written for a split and mark the split ROLLED_BACK.

    Orders are never deleted. An order that already left PENDING/CONFIRMED
    (or holds an unknown status) is still cancelled, but its audit entry is
    flagged off-graph and an error is logged for follow-up. Returns False
    (after logging) if any write fails; the marker then stays PENDING_SPLIT
    for the next sweep.
    """
    try:
        for order in orders:
            previous = stored_status(order)
            if previous == OrderStatus.CANCELLED:
                continue
            # Fulfillment may have moved on before a late sweep got here
            off_graph = previous is None or not can_transition(
                previous, OrderStatus.CANCELLED
            )
            from_status = previous.value if previous else order.order_status
            if off_graph:
                logger.error(
                    "checkout_split_rollback_off_graph",
                    checkout_id=str(split_id),
                    order_id=str(order.id),
                    order_number=order.order_number,
                    from_status=from_status,
                )
            now = clock()
            updated = store.update(
                order.id,
                {
                    "order_status": OrderStatus.CANCELLED.value,
                    "notes": _append_note(order.notes, f"Checkout split rolled back: {reason}"),
                    "updated_at": now,
                },
            )
            if updated is None:
                continue
            record_status_change(
                store,
                updated,
                kind=AuditKind.ORDER_STATUS,
                operation=AuditOperation.ROLLBACK,
                from_status=from_status,
                to_status=OrderStatus.CANCELLED.value,
                caller=SYSTEM_CALLER,
                reason=reason,
                off_graph=off_graph,
            )
            order_status_changes_total.labels(
                operation="rollback", to_status=OrderStatus.CANCELLED.value
            ).inc()

        store.update_split(
            split_id,
            {
                "status": SplitStatus.ROLLED_BACK.value,
                "last_error": reason[:LAST_ERROR_MAX_LENGTH],
                "updated_at": clock(),
            },
        )
    except StoreError as e:
        logger.error(
            "checkout_split_rollback_failed",
            checkout_id=str(split_id),
            order_count=len(orders),
            error_message=e.message,
        )
        return False

    logger.warning(
        "checkout_split_rolled_back",
        checkout_id=str(split_id),
        cancelled_orders=len(orders),
        reason=reason,
    )
    return True


class OrderSplitter:
    def __init__(
        self,
        store: OrderStore,
        sequence: OrderNumberSequence,
        clock: Callable[[], datetime] = get_datetime_utc,
    ):
        self.store = store
        self.sequence = sequence
        self.clock = clock

    async def split(self, checkout: CheckoutCreate) -> SplitResult:
        """
        Turn a checkout into one PENDING/PENDING order per seller.

        Raises:
            OrderValidationError: before any write
            StoreError: a write failed; already written sibling orders have
                been cancelled (or left for the reconciler)
        """
        validate_checkout(checkout)
        groups = group_items_by_seller(checkout.items)

        items_total = round_money(sum(item_subtotal(item) for item in checkout.items))
        if abs(items_total - checkout.subtotal) >= 0.01:
            logger.warning(
                "checkout_subtotal_mismatch",
                customer_id=checkout.customer_id,
                cart_subtotal=checkout.subtotal,
                items_subtotal=items_total,
            )

        logger.info(
            "order_creation_started",
            customer_id=checkout.customer_id,
            item_count=len(checkout.items),
            seller_count=len(groups),
            total=checkout.total,
        )

        if len(groups) == 1:
            return await self._create_single(checkout, groups)
        return await self._create_split(checkout, groups)

    async def _create_single(
        self, checkout: CheckoutCreate, groups: dict[str, list[CheckoutItem]]
    ) -> SplitResult:
        ((seller_key, items),) = groups.items()
        total = checkout.total
        if total is None:
            total = round_money(
                checkout.subtotal - checkout.discount + checkout.tax + checkout.shipping
            )
        allocation = SellerAllocation(
            seller_key=seller_key,
            items=items,
            subtotal=checkout.subtotal,
            tax=checkout.tax,
            shipping=checkout.shipping,
            discount=checkout.discount,
            total=total,
        )

        created_at = self.clock()
        order_number = format_order_number(created_at, await self.sequence.next_value())
        order = self.store.create(
            self._build_order(
                checkout,
                allocation,
                order_number=order_number,
                created_at=created_at,
                checkout_id=None,
                notes=checkout.notes,
            )
        )

        orders_created_total.labels(mode="single").inc()
        checkout_split_size.observe(1)
        logger.info(
            "order_created",
            order_id=str(order.id),
            order_number=order.order_number,
            seller_id=order.seller_id,
            total=order.total,
        )
        return SplitResult(orders=[order])

    async def _create_split(
        self, checkout: CheckoutCreate, groups: dict[str, list[CheckoutItem]]
    ) -> SplitResult:
        allocations = allocate_shared_costs(checkout, groups)
        created_at = self.clock()

        order_numbers = []
        for _ in allocations:
            order_numbers.append(
                format_order_number(created_at, await self.sequence.next_value())
            )

        split = self.store.create_split(
            CheckoutSplit(
                customer_id=checkout.customer_id,
                expected_orders=len(allocations),
                order_numbers=order_numbers,
                created_at=created_at,
                updated_at=created_at,
            )
        )
        logger.info(
            "checkout_split_started",
            checkout_id=str(split.id),
            seller_count=len(allocations),
            order_numbers=order_numbers,
        )

        created: list[Order] = []
        try:
            for allocation, order_number in zip(allocations, order_numbers):
                order = self.store.create(
                    self._build_order(
                        checkout,
                        allocation,
                        order_number=order_number,
                        created_at=created_at,
                        checkout_id=split.id,
                        notes=split_note(checkout.notes, allocation.seller_key),
                    )
                )
                created.append(order)
                orders_created_total.labels(mode="split").inc()
                logger.info(
                    "split_order_created",
                    checkout_id=str(split.id),
                    order_id=str(order.id),
                    order_number=order.order_number,
                    seller_id=allocation.seller_key,
                    total=order.total,
                )
        except StoreError as e:
            logger.error(
                "checkout_split_failed",
                checkout_id=str(split.id),
                written_orders=len(created),
                expected_orders=len(allocations),
                error_message=e.message,
            )
            reason = f"{len(created)} of {len(allocations)} seller orders written: {e.message}"
            if roll_back_split(self.store, split.id, created, reason, self.clock):
                checkout_splits_total.labels(outcome="rolled_back").inc()
            else:
                checkout_splits_total.labels(outcome="compensation_failed").inc()
            raise

        try:
            self.store.update_split(
                split.id,
                {"status": SplitStatus.COMPLETED.value, "updated_at": self.clock()},
            )
        except StoreError:
            # Every order exists; the reconciler will mark the split COMPLETED
            logger.warning("checkout_split_completion_deferred", checkout_id=str(split.id))

        checkout_splits_total.labels(outcome="completed").inc()
        checkout_split_size.observe(len(created))
        logger.info(
            "checkout_split_completed",
            checkout_id=str(split.id),
            order_count=len(created),
            customer_id=checkout.customer_id,
        )
        return SplitResult(orders=created, checkout_id=split.id)

    def _build_order(
        self,
        checkout: CheckoutCreate,
        allocation: SellerAllocation,
        *,
        order_number: str,
        created_at: datetime,
        checkout_id: uuid.UUID | None,
        notes: str | None,
    ) -> Order:
        order = Order(
            order_number=order_number,
            checkout_id=checkout_id,
            customer_id=checkout.customer_id,
            customer_email=checkout.customer_email,
            seller_id=allocation.seller_id,
            subtotal=allocation.subtotal,
            tax=allocation.tax,
            shipping=allocation.shipping,
            discount=allocation.discount,
            total=allocation.total,
            coupon_code=checkout.coupon_code or None,
            order_status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=checkout.payment_method,
            shipping_address=checkout.shipping_address.model_dump(),
            notes=notes,
            created_at=created_at,
            updated_at=created_at,
        )
        order.items = [
            OrderItem(
                position=position,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                price=item.price,
                seller_id=item.seller_id,
                subtotal=item_subtotal(item),
            )
            for position, item in enumerate(allocation.items)
        ]
        return order


class SplitReconciler:
    """
    Resolves checkout splits left in PENDING_SPLIT.

    A split older than the grace period either has all of its orders (the
    process died before marking it) and is completed, or is missing some and
    is rolled back.
    """

    def __init__(
        self, store: OrderStore, clock: Callable[[], datetime] = get_datetime_utc
    ):
        self.store = store
        self.clock = clock

    def reconcile(self, older_than: timedelta) -> ReconcileReport:
        report = ReconcileReport()
        cutoff = self.clock() - older_than

        for split in self.store.find_splits(SplitStatus.PENDING_SPLIT, created_before=cutoff):
            orders = self.store.find(OrderQuery(checkout_id=split.id))

            if len(orders) >= split.expected_orders:
                self.store.update_split(
                    split.id,
                    {"status": SplitStatus.COMPLETED.value, "updated_at": self.clock()},
                )
                report.completed += 1
                split_reconciliation_total.labels(outcome="completed").inc()
                logger.info(
                    "checkout_split_reconciled",
                    checkout_id=str(split.id),
                    outcome="completed",
                    order_count=len(orders),
                )
                continue

            reason = (
                f"incomplete split: {len(orders)} of {split.expected_orders} "
                "seller orders found by reconciliation"
            )
            if roll_back_split(self.store, split.id, orders, reason, self.clock):
                report.rolled_back += 1
                split_reconciliation_total.labels(outcome="rolled_back").inc()
            else:
                report.failed.append(split.id)

        return report
