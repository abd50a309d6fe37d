from collections.abc import Callable
from datetime import datetime

from app.core.errors import OrderNotFoundError, PermissionDeniedError
from app.core.logging import get_logger
from app.core.metrics import payment_status_updates_total
from app.core.security import Caller, Capability
from app.models import AuditKind, AuditOperation, Order, PaymentStatus, get_datetime_utc
from app.repositories.order_store import OrderStore
from app.services.audit import record_status_change

logger = get_logger(__name__)


class PaymentStatusTracker:
    """
    Records payment status reported by callers.

    Any status may replace any other. No ordering between payment states is
    known for this system (e.g. whether REFUNDED may follow FAILED), so none
    is enforced here; each write is audited with its previous value instead.
    Independent of the fulfillment status.
    """

    def __init__(
        self, store: OrderStore, clock: Callable[[], datetime] = get_datetime_utc
    ):
        self.store = store
        self.clock = clock

    def set_payment_status(
        self,
        order_id: str,
        new_status: PaymentStatus,
        caller: Caller,
        reason: str | None = None,
    ) -> Order:
        if not caller.can(Capability.PAYMENT_RECORD):
            raise PermissionDeniedError(
                f"Role '{caller.role.value}' may not record payment status",
                caller_id=caller.user_id,
            )

        order = self.store.get(order_id)
        if order is None:
            logger.warning("payment_status_update_not_found", order_id=order_id)
            raise OrderNotFoundError(order_id)

        previous = order.payment_status
        updated = self.store.update(
            order.id, {"payment_status": new_status.value, "updated_at": self.clock()}
        )
        if updated is None:
            raise OrderNotFoundError(order_id)

        record_status_change(
            self.store,
            updated,
            kind=AuditKind.PAYMENT_STATUS,
            operation=AuditOperation.PAYMENT,
            from_status=previous,
            to_status=new_status.value,
            caller=caller,
            reason=reason,
        )
        payment_status_updates_total.labels(to_status=new_status.value).inc()
        logger.info(
            "payment_status_updated",
            order_id=order_id,
            order_number=updated.order_number,
            from_status=previous,
            to_status=new_status.value,
            actor_id=caller.user_id,
        )
        return updated
