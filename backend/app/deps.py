from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header
from sqlmodel import Session

from app.core.config import settings
from app.core.db import engine
from app.core.errors import UnauthenticatedError
from app.core.redis import RedisClient, redis_client
from app.core.security import Caller, CallerRole
from app.repositories.order_store import OrderStore
from app.repositories.sql_order_store import SqlOrderStore
from app.services.order_numbers import (
    InMemoryOrderNumberSequence,
    OrderNumberSequence,
    RedisOrderNumberSequence,
)
from app.services.order_splitter import OrderSplitter
from app.services.order_status import AdminStatusOverride, OrderStatusMachine
from app.services.payment_status import PaymentStatusTracker
from app.services.settlement import SettlementAggregator

# Only for ORDER_SEQUENCE_BACKEND=memory (single process, development)
_memory_sequence = InMemoryOrderNumberSequence()


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def get_redis() -> RedisClient:
    return redis_client


RedisDep = Annotated[RedisClient, Depends(get_redis)]
SessionDep = Annotated[Session, Depends(get_db)]


def get_order_store() -> OrderStore:
    return SqlOrderStore(engine)


def get_order_number_sequence(redis: RedisDep) -> OrderNumberSequence:
    if settings.ORDER_SEQUENCE_BACKEND == "memory":
        return _memory_sequence
    return RedisOrderNumberSequence(redis)


StoreDep = Annotated[OrderStore, Depends(get_order_store)]
SequenceDep = Annotated[OrderNumberSequence, Depends(get_order_number_sequence)]


def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Caller:
    """
    Identity forwarded by the gateway.

    Raises:
        UnauthenticatedError: a header is missing or the role is unknown
    """
    if not x_user_id or not x_user_id.strip() or not x_user_role:
        raise UnauthenticatedError("Authentication required")
    try:
        role = CallerRole(x_user_role.strip().lower())
    except ValueError:
        raise UnauthenticatedError("Unknown caller role", role=x_user_role)
    # SYSTEM is reserved for in-process callers
    if role == CallerRole.SYSTEM:
        raise UnauthenticatedError("Unknown caller role", role=x_user_role)
    return Caller(user_id=x_user_id.strip(), role=role)


CallerDep = Annotated[Caller, Depends(get_caller)]


def get_order_splitter(store: StoreDep, sequence: SequenceDep) -> OrderSplitter:
    return OrderSplitter(store, sequence)


def get_status_machine(store: StoreDep) -> OrderStatusMachine:
    return OrderStatusMachine(store)


def get_status_override(store: StoreDep) -> AdminStatusOverride:
    return AdminStatusOverride(store)


def get_payment_tracker(store: StoreDep) -> PaymentStatusTracker:
    return PaymentStatusTracker(store)


def get_settlement(store: StoreDep) -> SettlementAggregator:
    return SettlementAggregator(store)


SplitterDep = Annotated[OrderSplitter, Depends(get_order_splitter)]
StatusMachineDep = Annotated[OrderStatusMachine, Depends(get_status_machine)]
StatusOverrideDep = Annotated[AdminStatusOverride, Depends(get_status_override)]
PaymentTrackerDep = Annotated[PaymentStatusTracker, Depends(get_payment_tracker)]
SettlementDep = Annotated[SettlementAggregator, Depends(get_settlement)]
