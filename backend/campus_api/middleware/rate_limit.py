"""
Campus API — Rate Limiting Stage
=================================

What:  Per-client fixed-window admission control backed by the counter store.
Why:   Protects the API from floods and brute-force attempts.
Who:   Runs after the security headers and before the auth gate, so an
       anonymous flood spends its quota before being rejected with 401.

Algorithm: Fixed Window Counter
    1. key = prefix + client address
    2. count = INCR key; on count == 1 the key gets TTL = window
    3. count > max → 429 RATE_LIMIT_EXCEEDED, handler never runs
    4. The window resets when the key expires

    Fixed (not sliding) window: one integer per client in the store, no
    timestamp lists. A client can burst up to 2×max across a window boundary.

Fail-open:
    No store configured, or the store is unreachable → log a warning and let
    the request continue. A limiter outage must never become a site outage.
"""

import asyncio
import logging
from typing import Optional

from starlette.requests import Request

from campus_api.exceptions import CounterStoreUnavailable, ErrorKind
from campus_api.middleware.context import (
    Ok,
    RateLimitConfig,
    Rejected,
    RequestContext,
    Route,
    StageResult,
)
from campus_api.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

# Errors that mean "store unreachable" rather than a bug in the limiter
STORE_FAILURES = (CounterStoreUnavailable, OSError, asyncio.TimeoutError)


def client_identity(request: Request) -> str:
    """
    The network identity a counter is keyed on.

    First hop of X-Forwarded-For when behind a proxy, else the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Fixed-window limiter stage.

    Configuration:
        default: RateLimitConfig from settings (15 min / 100 requests)
        per route: RouteConfig.rate_limit overrides window and max
    """

    def __init__(
        self,
        store: Optional[CounterStore],
        default: RateLimitConfig,
        key_prefix: str = "rate_limit:",
    ):
        self._store = store
        self._default = default
        self._key_prefix = key_prefix

    def key_for(self, request: Request, config: RateLimitConfig) -> str:
        prefix = config.key_prefix or self._key_prefix
        return f"{prefix}{client_identity(request)}"

    async def __call__(self, ctx: RequestContext, route: Route) -> StageResult:
        config = route.config.rate_limit or self._default

        if self._store is None:
            logger.warning("Counter store is not available, skipping rate limiting")
            return Ok()

        key = self.key_for(ctx.request, config)
        try:
            count = await self._store.increment_and_expire(key, config.window_seconds)
        except STORE_FAILURES as exc:
            logger.warning("Rate limiting skipped for %s: %s", key, exc)
            return Ok()

        if count > config.max:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window (max %d)",
                key,
                count,
                config.window_seconds,
                config.max,
            )
            return Rejected(ErrorKind.RATE_LIMITED)

        return Ok(count)


# ══════════════════════════════════════════════════════════════════════════
# Cleanup
# ══════════════════════════════════════════════════════════════════════════

async def reset_rate_limits(store: Optional[CounterStore], prefix: str) -> int:
    """
    Delete every counter under `prefix`. Returns the number of keys removed.

    Manual reset, independent of per-key expiry. Also clears counters that
    lost their TTL through a crash between INCR and EXPIRE.
    """
    if store is None:
        logger.warning("Counter store is not available for cleanup")
        return 0
    try:
        keys = await store.keys(f"{prefix}*")
        if keys:
            await store.delete(*keys)
    except STORE_FAILURES as exc:
        logger.error("Rate limit cleanup failed: %s", exc)
        return 0
    logger.info("Rate limit cleanup removed %d counters under %r", len(keys), prefix)
    return len(keys)


class RateLimitSweeper:
    """
    Background task calling reset_rate_limits() every `interval` seconds.

    Started and stopped by the application lifespan when
    RATE_LIMIT_SWEEP_INTERVAL > 0.
    """

    def __init__(self, store: Optional[CounterStore], prefix: str, interval: float):
        self._store = store
        self._prefix = prefix
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._interval <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        logger.info("Rate limit sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await reset_rate_limits(self._store, self._prefix)
