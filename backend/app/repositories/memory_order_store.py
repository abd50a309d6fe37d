"""
Process-local OrderStore.

Used for tests and single-process development. Documents are copied on the
way in and on the way out so callers can never mutate stored state without
going through update().
"""

import threading
import uuid
from datetime import datetime
from typing import Any

from app.models import CheckoutSplit, Order, OrderAuditEntry, OrderItem, SplitStatus
from app.repositories.order_store import OrderQuery, OrderStore, parse_order_id


def _copy_order(order: Order) -> Order:
    items = [OrderItem(**item.model_dump(exclude={"order_id"})) for item in order.items]
    data = order.model_dump()
    data["shipping_address"] = dict(order.shipping_address or {})
    copy = Order(**data)
    copy.items = items
    for item in copy.items:
        item.order_id = copy.id
    return copy


def _copy_split(split: CheckoutSplit) -> CheckoutSplit:
    data = split.model_dump()
    data["order_numbers"] = list(split.order_numbers or [])
    return CheckoutSplit(**data)


def _copy_audit(entry: OrderAuditEntry) -> OrderAuditEntry:
    return OrderAuditEntry(**entry.model_dump())


class InMemoryOrderStore(OrderStore):
    def __init__(self):
        self._orders: dict[uuid.UUID, Order] = {}
        self._splits: dict[uuid.UUID, CheckoutSplit] = {}
        self._audit: list[OrderAuditEntry] = []
        self._lock = threading.Lock()

    def _matches(self, order: Order, query: OrderQuery) -> bool:
        if query.customer_id is not None and order.customer_id != query.customer_id:
            return False
        if query.checkout_id is not None and order.checkout_id != query.checkout_id:
            return False
        if query.seller_id is not None and not any(
            item.seller_id == query.seller_id for item in order.items
        ):
            return False
        return True

    # ORDERS

    def create(self, order: Order) -> Order:
        stored = _copy_order(order)
        with self._lock:
            self._orders[stored.id] = stored
        return _copy_order(stored)

    def get(self, order_id: uuid.UUID | str) -> Order | None:
        uid = parse_order_id(order_id)
        with self._lock:
            order = self._orders.get(uid) if uid else None
            return _copy_order(order) if order else None

    def find(
        self, query: OrderQuery, *, skip: int = 0, limit: int | None = None
    ) -> list[Order]:
        with self._lock:
            matches = [o for o in self._orders.values() if self._matches(o, query)]
            matches.sort(key=lambda o: (o.created_at, o.order_number), reverse=True)
            end = None if limit is None else skip + limit
            return [_copy_order(o) for o in matches[skip:end]]

    def count(self, query: OrderQuery) -> int:
        with self._lock:
            return sum(1 for o in self._orders.values() if self._matches(o, query))

    def update(self, order_id: uuid.UUID | str, changes: dict[str, Any]) -> Order | None:
        uid = parse_order_id(order_id)
        with self._lock:
            order = self._orders.get(uid) if uid else None
            if order is None:
                return None
            for field, value in changes.items():
                setattr(order, field, value)
            return _copy_order(order)

    # SPLIT MARKERS

    def create_split(self, split: CheckoutSplit) -> CheckoutSplit:
        stored = _copy_split(split)
        with self._lock:
            self._splits[stored.id] = stored
        return _copy_split(stored)

    def update_split(
        self, split_id: uuid.UUID, changes: dict[str, Any]
    ) -> CheckoutSplit | None:
        with self._lock:
            split = self._splits.get(split_id)
            if split is None:
                return None
            for field, value in changes.items():
                setattr(split, field, value)
            return _copy_split(split)

    def find_splits(
        self, status: SplitStatus, *, created_before: datetime | None = None
    ) -> list[CheckoutSplit]:
        with self._lock:
            splits = [
                s
                for s in self._splits.values()
                if s.status == status.value
                and (created_before is None or s.created_at < created_before)
            ]
        splits.sort(key=lambda s: s.created_at)
        return [_copy_split(s) for s in splits]

    # AUDIT

    def record_audit(self, entry: OrderAuditEntry) -> OrderAuditEntry:
        with self._lock:
            self._audit.append(_copy_audit(entry))
        return entry

    def find_audit(self, order_id: uuid.UUID | str) -> list[OrderAuditEntry]:
        uid = parse_order_id(order_id)
        with self._lock:
            return [_copy_audit(e) for e in self._audit if e.order_id == uid]
