"""
Order number generation.

Order numbers look like ``ORD-{epochMillis}-{sequence}``. The sequence comes
from an injectable generator that hands out each value exactly once, so two
checkouts sharing a millisecond still get distinct numbers.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from datetime import datetime

from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import StoreError
from app.core.redis import RedisClient


class OrderNumberSequence(ABC):
    @abstractmethod
    async def next_value(self) -> int:
        """Return the next value; never returns the same value twice."""


class InMemoryOrderNumberSequence(OrderNumberSequence):
    """Counter local to one process; values restart on restart."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    async def next_value(self) -> int:
        with self._lock:
            return next(self._counter)


class RedisOrderNumberSequence(OrderNumberSequence):
    """Counter shared by every replica, backed by Redis INCR."""

    def __init__(self, redis: RedisClient, key: str = settings.ORDER_SEQUENCE_KEY):
        self.redis = redis
        self.key = key

    async def next_value(self) -> int:
        try:
            return await self.redis.incr(self.key)
        except (RedisError, RuntimeError) as e:
            raise StoreError("Order number sequence unavailable", key=self.key) from e


def format_order_number(
    created_at: datetime, sequence: int, prefix: str = settings.ORDER_NUMBER_PREFIX
) -> str:
    epoch_millis = int(created_at.timestamp() * 1000)
    return f"{prefix}-{epoch_millis}-{sequence}"
