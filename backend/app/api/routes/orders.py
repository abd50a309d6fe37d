import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.core.config import settings
from app.core.errors import OrderNotFoundError
from app.core.logging import get_logger
from app.deps import (
    CallerDep,
    PaymentTrackerDep,
    SettlementDep,
    SplitterDep,
    StatusMachineDep,
    StatusOverrideDep,
    StoreDep,
    get_caller,
)
from app.models import Order
from app.repositories.order_store import OrderQuery, OrderStore
from app.schemas import (
    ApiResponse,
    AuditData,
    AuditEntryPublic,
    CancelRequest,
    CheckoutCreate,
    CheckoutData,
    OrderData,
    OrderListData,
    OrderPublic,
    Pagination,
    PaymentUpdate,
    PlatformStats,
    SellerEarnings,
    SellerOrderListData,
    SellerStats,
    StatusUpdate,
)
from app.services.settlement import annotate_for_seller

# Every order route needs the forwarded identity; routes that act on it also
# declare CallerDep, which resolves to the same cached Caller
router = APIRouter(
    prefix="/orders", tags=["orders"], dependencies=[Depends(get_caller)]
)
logger = get_logger(__name__)

PageQuery = Annotated[int, Query(ge=1)]
LimitQuery = Annotated[int, Query(ge=1, le=settings.MAX_PAGE_SIZE)]


def _paginate(
    store: OrderStore, query: OrderQuery, page: int, limit: int
) -> tuple[list[Order], Pagination]:
    total = store.count(query)
    orders = store.find(query, skip=(page - 1) * limit, limit=limit)
    pagination = Pagination(
        page=page, limit=limit, total=total, pages=math.ceil(total / limit)
    )
    return orders, pagination


def _order_response(order: Order, message: str | None = None) -> ApiResponse[OrderData]:
    return ApiResponse[OrderData](
        data=OrderData(order=OrderPublic.model_validate(order)), message=message
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    checkout: CheckoutCreate, splitter: SplitterDep
) -> ApiResponse[CheckoutData]:
    """Create one order per seller from a checkout"""
    result = await splitter.split(checkout)

    if result.order_count > 1:
        message = f"Checkout split into {result.order_count} seller orders"
    else:
        message = "Order created successfully"

    return ApiResponse[CheckoutData](
        data=CheckoutData(
            order=OrderPublic.model_validate(result.order),
            orders=[OrderPublic.model_validate(order) for order in result.orders],
            order_count=result.order_count,
            checkout_id=result.checkout_id,
        ),
        message=message,
    )


@router.get("")
def read_orders(
    store: StoreDep,
    customer_id: Annotated[str | None, Query(alias="customerId")] = None,
    page: PageQuery = 1,
    limit: LimitQuery = settings.DEFAULT_PAGE_SIZE,
) -> ApiResponse[OrderListData]:
    """All orders, newest first, optionally for one customer"""
    orders, pagination = _paginate(
        store, OrderQuery(customer_id=customer_id), page, limit
    )
    logger.debug(
        "orders_list_retrieved",
        customer_id=customer_id,
        returned=len(orders),
        total=pagination.total,
    )
    return ApiResponse[OrderListData](
        data=OrderListData(
            orders=[OrderPublic.model_validate(order) for order in orders],
            pagination=pagination,
        )
    )


@router.get("/admin-stats")
def read_platform_stats(settlement: SettlementDep) -> ApiResponse[PlatformStats]:
    return ApiResponse[PlatformStats](data=settlement.platform_stats())


@router.get("/customer/{customer_id}")
def read_customer_orders(
    customer_id: str,
    store: StoreDep,
    page: PageQuery = 1,
    limit: LimitQuery = settings.DEFAULT_PAGE_SIZE,
) -> ApiResponse[OrderListData]:
    orders, pagination = _paginate(
        store, OrderQuery(customer_id=customer_id), page, limit
    )
    return ApiResponse[OrderListData](
        data=OrderListData(
            orders=[OrderPublic.model_validate(order) for order in orders],
            pagination=pagination,
        )
    )


@router.get("/seller/{seller_id}")
def read_seller_orders(
    seller_id: str,
    store: StoreDep,
    page: PageQuery = 1,
    limit: LimitQuery = settings.DEFAULT_PAGE_SIZE,
) -> ApiResponse[SellerOrderListData]:
    """Orders holding at least one of the seller's items, restricted to those items"""
    orders, pagination = _paginate(store, OrderQuery(seller_id=seller_id), page, limit)
    return ApiResponse[SellerOrderListData](
        data=SellerOrderListData(
            orders=[annotate_for_seller(order, seller_id) for order in orders],
            pagination=pagination,
        )
    )


@router.get("/seller-stats/{seller_id}")
def read_seller_stats(seller_id: str, settlement: SettlementDep) -> ApiResponse[SellerStats]:
    return ApiResponse[SellerStats](data=settlement.seller_stats(seller_id))


@router.get("/seller-earnings/{seller_id}")
def read_seller_earnings(
    seller_id: str,
    settlement: SettlementDep,
    commission_rate: Annotated[
        float, Query(alias="commissionRate")
    ] = settings.DEFAULT_COMMISSION_RATE,
) -> ApiResponse[SellerEarnings]:
    return ApiResponse[SellerEarnings](
        data=settlement.seller_earnings(seller_id, commission_rate)
    )


@router.get("/{order_id}")
def read_order(order_id: str, store: StoreDep) -> ApiResponse[OrderData]:
    order = store.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return _order_response(order)


@router.get("/{order_id}/audit")
def read_order_audit(order_id: str, store: StoreDep) -> ApiResponse[AuditData]:
    """Status and payment writes for an order, oldest first"""
    order = store.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    entries = store.find_audit(order.id)
    return ApiResponse[AuditData](
        data=AuditData(
            entries=[AuditEntryPublic.model_validate(entry) for entry in entries]
        )
    )


@router.patch("/{order_id}/status")
def override_order_status(
    order_id: str,
    update: StatusUpdate,
    caller: CallerDep,
    override: StatusOverrideDep,
) -> ApiResponse[OrderData]:
    """Set any fulfillment status (admin and seller roles only, audited)"""
    order = override.set_status(order_id, update.order_status, caller, update.reason)
    return _order_response(order, "Order status updated")


@router.patch("/{order_id}/fulfillment")
def transition_order_status(
    order_id: str,
    update: StatusUpdate,
    caller: CallerDep,
    machine: StatusMachineDep,
) -> ApiResponse[OrderData]:
    """Advance the fulfillment status along the allowed transitions"""
    order = machine.transition(order_id, update.order_status, caller)
    return _order_response(order, "Order status updated")


@router.patch("/{order_id}/payment")
def update_payment_status(
    order_id: str,
    update: PaymentUpdate,
    caller: CallerDep,
    tracker: PaymentTrackerDep,
) -> ApiResponse[OrderData]:
    order = tracker.set_payment_status(
        order_id, update.payment_status, caller, update.reason
    )
    return _order_response(order, "Payment status updated")


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    caller: CallerDep,
    machine: StatusMachineDep,
    cancel: CancelRequest | None = None,
) -> ApiResponse[OrderData]:
    order = machine.cancel(order_id, caller, cancel.reason if cancel else None)
    return _order_response(order, "Order cancelled successfully")
