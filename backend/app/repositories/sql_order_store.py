"""
SQLModel-backed OrderStore.

Each method opens its own short session and commits once, which is what gives
the per-document atomicity the contract promises. Reads retry transient
connection failures (OperationalError) with exponential backoff; writes are
never retried because a write whose commit outcome is unknown may already
have landed.
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, col, func, select
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.core.errors import StoreError
from app.core.logging import get_logger
from app.core.metrics import store_errors_total
from app.models import CheckoutSplit, Order, OrderAuditEntry, OrderItem, SplitStatus
from app.repositories.order_store import OrderQuery, OrderStore, parse_order_id

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, StoreError) and isinstance(exc.__cause__, OperationalError)


retry_reads = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(settings.STORE_READ_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.1, max=2),
    reraise=True,
)


class SqlOrderStore(OrderStore):
    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            store_errors_total.labels(operation=operation).inc()
            logger.error(
                "order_store_operation_failed",
                operation=operation,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise StoreError(f"Order store {operation} failed", operation=operation) from e
        finally:
            session.close()

    def _apply_query(self, statement, query: OrderQuery):
        if query.customer_id is not None:
            statement = statement.where(Order.customer_id == query.customer_id)
        if query.checkout_id is not None:
            statement = statement.where(Order.checkout_id == query.checkout_id)
        if query.seller_id is not None:
            seller_orders = select(OrderItem.order_id).where(
                OrderItem.seller_id == query.seller_id
            )
            statement = statement.where(col(Order.id).in_(seller_orders))
        return statement

    # ORDERS

    def create(self, order: Order) -> Order:
        with self._session("create") as session:
            session.add(order)
            session.commit()
            logger.debug(
                "order_stored", order_id=str(order.id), order_number=order.order_number
            )
            return order

    @retry_reads
    def get(self, order_id: uuid.UUID | str) -> Order | None:
        uid = parse_order_id(order_id)
        if uid is None:
            return None
        with self._session("get") as session:
            return session.get(Order, uid)

    @retry_reads
    def find(
        self, query: OrderQuery, *, skip: int = 0, limit: int | None = None
    ) -> list[Order]:
        statement = self._apply_query(select(Order), query).order_by(
            col(Order.created_at).desc(), col(Order.order_number).desc()
        )
        if skip:
            statement = statement.offset(skip)
        if limit is not None:
            statement = statement.limit(limit)
        with self._session("find") as session:
            return list(session.exec(statement).all())

    @retry_reads
    def count(self, query: OrderQuery) -> int:
        statement = self._apply_query(select(func.count()).select_from(Order), query)
        with self._session("count") as session:
            return session.exec(statement).one()

    def update(self, order_id: uuid.UUID | str, changes: dict[str, Any]) -> Order | None:
        uid = parse_order_id(order_id)
        if uid is None:
            return None
        with self._session("update") as session:
            order = session.get(Order, uid)
            if order is None:
                return None
            for field, value in changes.items():
                setattr(order, field, value)
            session.add(order)
            session.commit()
            return order

    # SPLIT MARKERS

    def create_split(self, split: CheckoutSplit) -> CheckoutSplit:
        with self._session("create_split") as session:
            session.add(split)
            session.commit()
            return split

    def update_split(
        self, split_id: uuid.UUID, changes: dict[str, Any]
    ) -> CheckoutSplit | None:
        with self._session("update_split") as session:
            split = session.get(CheckoutSplit, split_id)
            if split is None:
                return None
            for field, value in changes.items():
                setattr(split, field, value)
            session.add(split)
            session.commit()
            return split

    @retry_reads
    def find_splits(
        self, status: SplitStatus, *, created_before: datetime | None = None
    ) -> list[CheckoutSplit]:
        statement = select(CheckoutSplit).where(CheckoutSplit.status == status.value)
        if created_before is not None:
            statement = statement.where(CheckoutSplit.created_at < created_before)
        statement = statement.order_by(col(CheckoutSplit.created_at).asc())
        with self._session("find_splits") as session:
            return list(session.exec(statement).all())

    # AUDIT

    def record_audit(self, entry: OrderAuditEntry) -> OrderAuditEntry:
        with self._session("record_audit") as session:
            session.add(entry)
            session.commit()
            return entry

    @retry_reads
    def find_audit(self, order_id: uuid.UUID | str) -> list[OrderAuditEntry]:
        uid = parse_order_id(order_id)
        if uid is None:
            return []
        statement = (
            select(OrderAuditEntry)
            .where(OrderAuditEntry.order_id == uid)
            .order_by(col(OrderAuditEntry.created_at).asc())
        )
        with self._session("find_audit") as session:
            return list(session.exec(statement).all())
