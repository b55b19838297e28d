"""
Campus API — Counter Store
===========================

What:  The external store holding fixed-window rate-limit counters.
Why:   Counters must be shared by every worker process, so they cannot live in
       process memory. Redis INCR is atomic and keys expire on their own.
How:   CounterStore is the minimal contract the rate limiter depends on.
       RedisCounterStore implements it on redis.asyncio and translates
       connection and timeout failures into CounterStoreUnavailable, which the
       limiter treats as "let the request through". Command errors propagate.

Contract (minimum surface):
    increment(key)               -> int     atomic +1, creating the key at 1
    expire(key, ttl_seconds)     -> None
    keys(pattern)                -> [str]   glob pattern, e.g. "rate_limit:*"
    delete(*keys)                -> None

Tie-break on expiry:
    increment followed by expire is two round trips; a crash between them
    leaves a counter without TTL that never clears. increment_and_expire()
    closes that gap where the backend can (Redis MULTI/EXEC with EXPIRE NX).
    Servers older than Redis 7 reject EXPIRE NX; the Redis store then falls
    back to the two-step sequence for the rest of its life.
    The base-class fallback keeps the two-step sequence; the cleanup sweep
    removes any counter it leaks.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from campus_api.exceptions import CounterStoreUnavailable

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Abstract counter store. Implementations raise CounterStoreUnavailable when unreachable."""

    @abstractmethod
    async def increment(self, key: str) -> int:
        ...

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> List[str]:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        ...

    async def increment_and_expire(self, key: str, ttl_seconds: int) -> int:
        """Increment, and set the TTL when this increment created the counter."""
        count = await self.increment(key)
        if count == 1:
            await self.expire(key, ttl_seconds)
        return count

    async def ping(self) -> bool:
        """Connectivity probe for the health route."""
        await self.keys("__ping__")
        return True

    async def close(self) -> None:
        return None


@contextmanager
def _unavailable_on_error(operation: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
        raise CounterStoreUnavailable(f"Counter store {operation} failed: {exc}") from exc


class RedisCounterStore(CounterStore):
    """
    Counter store backed by Redis.

    The client connects lazily, so constructing this never fails even when
    Redis is down; the first command raises CounterStoreUnavailable instead.
    Socket timeouts are short on purpose: a slow limiter must not stall
    every request behind it.
    """

    def __init__(self, client: "redis.Redis"):
        self._client = client
        self._expire_nx = True

    @classmethod
    def from_url(cls, url: str, timeout: float = 1.0) -> "RedisCounterStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client)

    async def increment(self, key: str) -> int:
        with _unavailable_on_error("INCR"):
            return int(await self._client.incr(key))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        with _unavailable_on_error("EXPIRE"):
            await self._client.expire(key, ttl_seconds)

    async def keys(self, pattern: str) -> List[str]:
        # SCAN instead of KEYS: does not block the Redis server on large keyspaces
        with _unavailable_on_error("SCAN"):
            return [key async for key in self._client.scan_iter(match=pattern)]

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        with _unavailable_on_error("DEL"):
            await self._client.delete(*keys)

    async def increment_and_expire(self, key: str, ttl_seconds: int) -> int:
        if not self._expire_nx:
            return await super().increment_and_expire(key, ttl_seconds)

        # EXPIRE ... NX only sets a TTL on a counter that has none (Redis >= 7).
        # Older servers abort the whole transaction, so INCR did not apply.
        try:
            with _unavailable_on_error("MULTI"):
                async with self._client.pipeline(transaction=True) as pipe:
                    count, _ = await pipe.incr(key).expire(key, ttl_seconds, nx=True).execute()
        except ResponseError as exc:
            logger.warning(
                "Redis rejected EXPIRE NX (%s); using INCR then EXPIRE from now on", exc
            )
            self._expire_nx = False
            return await super().increment_and_expire(key, ttl_seconds)
        return int(count)

    async def ping(self) -> bool:
        with _unavailable_on_error("PING"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def build_counter_store(url: Optional[str]) -> Optional[CounterStore]:
    """
    Create the configured counter store, or None when rate limiting has no backend.

    None is a valid configuration: the limiter fails open and logs a warning
    per request.
    """
    if not url:
        logger.warning("REDIS_URL is empty; rate limiting is disabled (fail-open)")
        return None
    try:
        return RedisCounterStore.from_url(url)
    except (RedisError, ValueError) as exc:
        logger.warning("Could not initialise counter store (%s); rate limiting disabled", exc)
        return None
