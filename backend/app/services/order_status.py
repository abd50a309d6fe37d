"""
Fulfillment status changes.

Two capabilities with deliberately different rigor:

- OrderStatusMachine: guarded paths. ``cancel`` (CustomerCancel) and
  ``transition`` only move along ORDER_STATUS_TRANSITIONS.
- AdminStatusOverride: privileged ``set_status`` that writes any status.
  Every override is audited and flagged when it leaves the graph.

Both read the order, then write it. There is no version check between the
read and the write, so concurrent changes to one order are last-write-wins.
"""

from collections.abc import Callable
from datetime import datetime

from app.core.errors import InvalidStateError, OrderNotFoundError, PermissionDeniedError
from app.core.logging import get_logger
from app.core.metrics import order_status_changes_total
from app.core.security import Caller, Capability
from app.models import AuditKind, AuditOperation, Order, OrderStatus, get_datetime_utc
from app.repositories.order_store import OrderStore
from app.services.audit import record_status_change

logger = get_logger(__name__)

ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_STATUS_TRANSITIONS.get(current, frozenset())


def _require(caller: Caller, capability: Capability) -> None:
    if not caller.can(capability):
        raise PermissionDeniedError(
            f"Role '{caller.role.value}' may not perform {capability.value}",
            caller_id=caller.user_id,
        )


def stored_status(order: Order) -> OrderStatus | None:
    """The order's status as an enum (any casing), or None if it is not a known status."""
    try:
        return OrderStatus.parse(order.order_status)
    except ValueError:
        logger.warning(
            "order_status_unrecognized", order_id=str(order.id), status=order.order_status
        )
        return None


def _current_status(order: Order) -> OrderStatus:
    """
    Raises:
        InvalidStateError: the stored status is not one the graph knows
    """
    current = stored_status(order)
    if current is None:
        raise InvalidStateError(
            f"Unrecognized order status: {order.order_status}",
            order_id=str(order.id),
            status=order.order_status,
        )
    return current


class OrderStatusMachine:
    def __init__(
        self, store: OrderStore, clock: Callable[[], datetime] = get_datetime_utc
    ):
        self.store = store
        self.clock = clock

    def _load(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _write(
        self,
        order: Order,
        previous: OrderStatus,
        target: OrderStatus,
        operation: AuditOperation,
        caller: Caller,
        reason: str | None = None,
    ) -> Order:
        updated = self.store.update(
            order.id, {"order_status": target.value, "updated_at": self.clock()}
        )
        if updated is None:
            raise OrderNotFoundError(order.id)

        record_status_change(
            self.store,
            updated,
            kind=AuditKind.ORDER_STATUS,
            operation=operation,
            from_status=previous.value,
            to_status=target.value,
            caller=caller,
            reason=reason,
        )
        order_status_changes_total.labels(
            operation=operation.value, to_status=target.value
        ).inc()
        return updated

    def cancel(self, order_id: str, caller: Caller, reason: str | None = None) -> Order:
        """
        Cancel an order that has not started processing.

        Raises:
            OrderNotFoundError: unknown order
            InvalidStateError: already cancelled, past CONFIRMED, or unrecognized
        """
        _require(caller, Capability.CUSTOMER_CANCEL)
        order = self._load(order_id)
        current = _current_status(order)

        if current == OrderStatus.CANCELLED:
            logger.warning("order_cancel_rejected", order_id=order_id, reason="already_cancelled")
            raise InvalidStateError("Order is already cancelled", order_id=order_id)

        if current not in CANCELLABLE_STATUSES:
            logger.warning(
                "order_cancel_rejected", order_id=order_id, status=current.value
            )
            raise InvalidStateError(
                f"Cannot cancel order with status: {current.value}",
                order_id=order_id,
                status=current.value,
            )

        updated = self._write(
            order, current, OrderStatus.CANCELLED, AuditOperation.CANCEL, caller, reason
        )
        logger.info(
            "order_cancelled",
            order_id=order_id,
            order_number=updated.order_number,
            previous_status=current.value,
            actor_id=caller.user_id,
        )
        return updated

    def transition(self, order_id: str, target: OrderStatus, caller: Caller) -> Order:
        """
        Move an order one step along the fulfillment graph.

        Raises:
            OrderNotFoundError: unknown order
            InvalidStateError: ``target`` is not reachable from the current (or an
                unrecognized) status
        """
        _require(caller, Capability.FULFILLMENT_TRANSITION)
        order = self._load(order_id)
        current = _current_status(order)

        if not can_transition(current, target):
            raise InvalidStateError(
                f"Cannot change order status from {current.value} to {target.value}",
                order_id=order_id,
                status=current.value,
                target=target.value,
            )

        updated = self._write(order, current, target, AuditOperation.TRANSITION, caller)
        logger.info(
            "order_status_transitioned",
            order_id=order_id,
            from_status=current.value,
            to_status=target.value,
            actor_id=caller.user_id,
        )
        return updated


class AdminStatusOverride:
    """Unchecked status writes for operational UIs. Always audited."""

    def __init__(
        self, store: OrderStore, clock: Callable[[], datetime] = get_datetime_utc
    ):
        self.store = store
        self.clock = clock

    def set_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        caller: Caller,
        reason: str | None = None,
    ) -> Order:
        """
        Overwrite the fulfillment status, bypassing the transition graph.

        Raises:
            PermissionDeniedError: caller lacks the AdminOverride capability
            OrderNotFoundError: unknown order
        """
        _require(caller, Capability.ADMIN_OVERRIDE)
        order = self.store.get(order_id)
        if order is None:
            logger.warning("order_status_override_not_found", order_id=order_id)
            raise OrderNotFoundError(order_id)

        # An unrecognized stored status is overwritten and recorded as found
        previous = stored_status(order)
        from_status = previous.value if previous else order.order_status
        off_graph = previous is None or (
            previous != new_status and not can_transition(previous, new_status)
        )

        updated = self.store.update(
            order.id, {"order_status": new_status.value, "updated_at": self.clock()}
        )
        if updated is None:
            raise OrderNotFoundError(order_id)

        record_status_change(
            self.store,
            updated,
            kind=AuditKind.ORDER_STATUS,
            operation=AuditOperation.OVERRIDE,
            from_status=from_status,
            to_status=new_status.value,
            caller=caller,
            reason=reason,
            off_graph=off_graph,
        )
        order_status_changes_total.labels(
            operation=AuditOperation.OVERRIDE.value, to_status=new_status.value
        ).inc()

        log = logger.warning if off_graph else logger.info
        log(
            "order_status_overridden",
            order_id=order_id,
            order_number=updated.order_number,
            from_status=from_status,
            to_status=new_status.value,
            off_graph=off_graph,
            actor_id=caller.user_id,
            actor_role=caller.role.value,
            reason=reason,
        )
        return updated
