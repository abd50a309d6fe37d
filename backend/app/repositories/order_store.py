"""
OrderStore contract.

Services depend only on this interface. Implementations guarantee atomicity
for a single document (an Order with its items, a CheckoutSplit marker, an
audit entry) and nothing more: there are no multi-document transactions, so
callers that write several documents must compensate on failure themselves.

Every method raises StoreError on persistence failure.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.models import CheckoutSplit, Order, OrderAuditEntry, SplitStatus


@dataclass(frozen=True)
class OrderQuery:
    """
    Filter for find()/count(). Unset fields do not filter.

    ``seller_id`` matches orders holding at least one item from that seller,
    regardless of the order's primary ``seller_id``.
    """

    customer_id: str | None = None
    seller_id: str | None = None
    checkout_id: uuid.UUID | None = None


def parse_order_id(value: Any) -> uuid.UUID | None:
    """Coerce a path or body id to UUID; None when it cannot be one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class OrderStore(ABC):
    # ORDERS

    @abstractmethod
    def create(self, order: Order) -> Order:
        """Persist a new order with its items and return the stored copy."""

    @abstractmethod
    def get(self, order_id: uuid.UUID | str) -> Order | None:
        """Find by id; None for unknown or malformed ids."""

    @abstractmethod
    def find(
        self, query: OrderQuery, *, skip: int = 0, limit: int | None = None
    ) -> list[Order]:
        """Matching orders, newest first. ``limit=None`` scans everything."""

    @abstractmethod
    def count(self, query: OrderQuery) -> int:
        pass

    @abstractmethod
    def update(self, order_id: uuid.UUID | str, changes: dict[str, Any]) -> Order | None:
        """
        Overwrite top-level order fields and return the updated order.

        Returns None if the order does not exist. Last write wins: there is
        no version check against concurrent writers.
        """

    # SPLIT MARKERS

    @abstractmethod
    def create_split(self, split: CheckoutSplit) -> CheckoutSplit:
        pass

    @abstractmethod
    def update_split(
        self, split_id: uuid.UUID, changes: dict[str, Any]
    ) -> CheckoutSplit | None:
        pass

    @abstractmethod
    def find_splits(
        self, status: SplitStatus, *, created_before: datetime | None = None
    ) -> list[CheckoutSplit]:
        """Markers in ``status``, oldest first."""

    # AUDIT

    @abstractmethod
    def record_audit(self, entry: OrderAuditEntry) -> OrderAuditEntry:
        pass

    @abstractmethod
    def find_audit(self, order_id: uuid.UUID | str) -> list[OrderAuditEntry]:
        """Audit entries for an order, oldest first."""
