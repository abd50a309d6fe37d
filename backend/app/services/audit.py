from app.core.errors import StoreError
from app.core.logging import get_logger
from app.core.security import Caller
from app.models import AuditKind, AuditOperation, Order, OrderAuditEntry
from app.repositories.order_store import OrderStore

logger = get_logger(__name__)


def record_status_change(
    store: OrderStore,
    order: Order,
    *,
    kind: AuditKind,
    operation: AuditOperation,
    from_status: str | None,
    to_status: str,
    caller: Caller,
    reason: str | None = None,
    off_graph: bool = False,
) -> OrderAuditEntry | None:
    """
    Append an audit entry for a status write that has already been applied.

    The order write is not undone if the audit write fails; the failure is
    logged with the full change so the log line stands in for the entry.
    """
    entry = OrderAuditEntry(
        order_id=order.id,
        kind=kind.value,
        operation=operation.value,
        from_status=from_status,
        to_status=to_status,
        off_graph=off_graph,
        actor_id=caller.user_id,
        actor_role=caller.role.value,
        reason=reason,
    )
    try:
        return store.record_audit(entry)
    except StoreError as e:
        logger.error(
            "order_audit_write_failed",
            order_id=str(order.id),
            kind=entry.kind,
            operation=entry.operation,
            from_status=from_status,
            to_status=to_status,
            off_graph=off_graph,
            actor_id=caller.user_id,
            actor_role=caller.role.value,
            error_message=e.message,
        )
        return None
