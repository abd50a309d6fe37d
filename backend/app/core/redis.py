"""
Redis connection used for the shared order number counter.

Only the commands the engine needs are wrapped (PING for readiness, INCR for
order numbers); each one is timed and its failures counted by kind.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import (
    redis_command_duration_seconds,
    redis_commands_total,
    redis_errors_total,
)

logger = get_logger(__name__)


class RedisClient:
    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self._client: redis.Redis | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """
        Open the pool and verify it with a PING.

        Raises:
            RedisError: the server is unreachable; the client stays disconnected
        """
        client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=5,
            health_check_interval=30,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error(
                "redis_connection_failed",
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                error_message=str(e),
            )
            raise
        self._client = client
        logger.info("redis_connected", host=settings.REDIS_HOST, port=settings.REDIS_PORT)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    @asynccontextmanager
    async def _command(self, name: str) -> AsyncIterator[redis.Redis]:
        if self._client is None:
            raise RuntimeError("Redis client not connected")

        started = time.perf_counter()
        try:
            yield self._client
        except (ConnectionError, TimeoutError) as e:
            redis_errors_total.labels(error_type="connection").inc()
            logger.error("redis_command_failed", command=name, error_message=str(e))
            raise
        except RedisError as e:
            redis_errors_total.labels(error_type="other").inc()
            logger.error("redis_command_failed", command=name, error_message=str(e))
            raise
        finally:
            redis_commands_total.labels(command=name).inc()
            redis_command_duration_seconds.labels(command=name).observe(
                time.perf_counter() - started
            )

    async def ping(self) -> bool:
        if not self.connected:
            return False
        try:
            async with self._command("ping") as client:
                return bool(await client.ping())
        except RedisError:
            return False

    async def incr(self, key: str) -> int:
        """
        Atomically bump ``key`` (created at 1) and return the new value.

        Raises:
            RuntimeError: not connected
            RedisError: the command failed
        """
        async with self._command("incr") as client:
            return int(await client.incr(key))


redis_client = RedisClient()
