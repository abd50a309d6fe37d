"""
Seller settlement reports.

Reports are read-only scans. An order document may hold items from several
sellers (orders written by older clients, or by paths other than the
splitter), so seller revenue is always recomputed from the seller's own
items rather than taken from the order total.
"""

import time
from collections import defaultdict
from datetime import datetime, timezone

from app.core.config import settings
from app.core.errors import OrderValidationError
from app.core.logging import get_logger
from app.core.metrics import settlement_report_duration_seconds
from app.models import Order, OrderItem, OrderStatus
from app.repositories.order_store import OrderQuery, OrderStore
from app.schemas import (
    EarningsSummary,
    MonthlyEarnings,
    OrderItemPublic,
    PlatformStats,
    SellerEarnings,
    SellerOrderPublic,
    SellerStats,
)
from app.services.money import round_money

logger = get_logger(__name__)

PENDING_BUCKET = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})
PROCESSING_BUCKET = frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED})
COMPLETED_BUCKET = frozenset({OrderStatus.DELIVERED})


def seller_items(order: Order, seller_id: str) -> list[OrderItem]:
    return [item for item in order.items if item.seller_id == seller_id]


def seller_subtotal(order: Order, seller_id: str) -> float:
    return sum(item.subtotal or 0 for item in seller_items(order, seller_id))


def annotate_for_seller(order: Order, seller_id: str) -> SellerOrderPublic:
    """The order restricted to one seller's items, with that seller's share."""
    items = seller_items(order, seller_id)
    return SellerOrderPublic.model_validate(
        {
            **order.model_dump(),
            "items": [OrderItemPublic.model_validate(item) for item in items],
            "seller_subtotal": round_money(sum(item.subtotal or 0 for item in items)),
            "seller_item_count": len(items),
            "total_item_count": len(order.items),
            "is_multi_seller_order": any(
                item.seller_id != seller_id for item in order.items
            ),
        }
    )


def _status_of(order: Order) -> OrderStatus | None:
    try:
        return OrderStatus.parse(order.order_status)
    except ValueError:
        logger.warning(
            "order_status_unrecognized", order_id=str(order.id), status=order.order_status
        )
        return None


def _as_utc(moment: datetime) -> datetime:
    # Some drivers hand back naive datetimes for timestamptz columns
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0


class SettlementAggregator:
    def __init__(self, store: OrderStore):
        self.store = store

    def seller_stats(self, seller_id: str) -> SellerStats:
        """
        Revenue and order-status counts over every order holding an item
        from ``seller_id``. Cancelled orders count toward totalOrders but
        fall into none of the status buckets.
        """
        started = time.perf_counter()
        orders = self.store.find(OrderQuery(seller_id=seller_id))

        revenue = 0.0
        pending = completed = processing = 0
        for order in orders:
            revenue += seller_subtotal(order, seller_id)
            status = _status_of(order)
            if status in PENDING_BUCKET:
                pending += 1
            elif status in COMPLETED_BUCKET:
                completed += 1
            elif status in PROCESSING_BUCKET:
                processing += 1

        total_orders = len(orders)
        completion_rate = _rate(completed, total_orders)
        stats = SellerStats(
            total_revenue=round_money(revenue),
            total_orders=total_orders,
            pending_orders=pending,
            completed_orders=completed,
            processing_orders=processing,
            completion_rate=round_money(completion_rate, 1),
            avg_order_value=round_money(revenue / total_orders) if total_orders else 0,
            success_rate=round_money(completion_rate, 0),
        )

        settlement_report_duration_seconds.labels(report="seller_stats").observe(
            time.perf_counter() - started
        )
        logger.info(
            "seller_stats_calculated",
            seller_id=seller_id,
            total_orders=total_orders,
            total_revenue=stats.total_revenue,
        )
        return stats

    def seller_earnings(
        self, seller_id: str, commission_rate: float = settings.DEFAULT_COMMISSION_RATE
    ) -> SellerEarnings:
        """
        Monthly revenue, commission and payout for a seller, newest month first.

        Months are calendar months of the order's createdAt in UTC.

        Raises:
            OrderValidationError: commission_rate outside [0, 1]
        """
        if not 0 <= commission_rate <= 1:
            raise OrderValidationError(
                "Commission rate must be between 0 and 1", commission_rate=commission_rate
            )

        started = time.perf_counter()
        orders = self.store.find(OrderQuery(seller_id=seller_id))

        monthly_revenue: dict[str, float] = defaultdict(float)
        monthly_orders: dict[str, int] = defaultdict(int)
        for order in orders:
            month_key = _as_utc(order.created_at).strftime("%Y-%m")
            monthly_revenue[month_key] += seller_subtotal(order, seller_id)
            monthly_orders[month_key] += 1

        monthly = []
        for month_key in sorted(monthly_revenue, reverse=True):
            year, month = (int(part) for part in month_key.split("-"))
            revenue = round_money(monthly_revenue[month_key])
            commission = round_money(revenue * commission_rate)
            monthly.append(
                MonthlyEarnings(
                    period=datetime(year, month, 1).strftime("%B %Y"),
                    month_key=month_key,
                    revenue=revenue,
                    orders=monthly_orders[month_key],
                    commission=commission,
                    payout=round_money(revenue - commission),
                )
            )

        total_revenue = round_money(sum(monthly_revenue.values()))
        total_commission = round_money(total_revenue * commission_rate)
        earnings = SellerEarnings(
            summary=EarningsSummary(
                total_revenue=total_revenue,
                total_orders=len(orders),
                total_commission=total_commission,
                total_payout=round_money(total_revenue - total_commission),
                commission_rate=commission_rate,
            ),
            monthly_earnings=monthly,
        )

        settlement_report_duration_seconds.labels(report="seller_earnings").observe(
            time.perf_counter() - started
        )
        logger.info(
            "seller_earnings_calculated",
            seller_id=seller_id,
            total_revenue=total_revenue,
            total_payout=earnings.summary.total_payout,
            months=len(monthly),
        )
        return earnings

    def platform_stats(self) -> PlatformStats:
        """Platform-wide counts and revenue (order totals, all sellers)."""
        started = time.perf_counter()
        orders = self.store.find(OrderQuery())

        stats = PlatformStats(total_orders=len(orders))
        revenue = 0.0
        for order in orders:
            revenue += order.total or 0
            status = _status_of(order)
            if status in PENDING_BUCKET:
                stats.pending_orders += 1
            elif status in COMPLETED_BUCKET:
                stats.completed_orders += 1
            elif status in PROCESSING_BUCKET:
                stats.processing_orders += 1
            elif status == OrderStatus.CANCELLED:
                stats.cancelled_orders += 1
        stats.total_revenue = round_money(revenue)

        settlement_report_duration_seconds.labels(report="platform_stats").observe(
            time.perf_counter() - started
        )
        logger.info(
            "platform_stats_calculated",
            total_orders=stats.total_orders,
            total_revenue=stats.total_revenue,
        )
        return stats
