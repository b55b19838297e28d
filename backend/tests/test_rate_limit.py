"""
Campus API — Rate Limiter Unit Tests
=====================================

What we test:
    ✅ Client identity: X-Forwarded-For first hop, socket peer, "unknown"
    ✅ TTL is set once, when the counter is created
    ✅ count > max rejects, count == max still passes
    ✅ Per-route window, quota and key prefix
    ✅ Fail-open on store outage
    ✅ Cleanup sweep (manual and scheduled)
    ✅ RedisCounterStore: MULTI/EXEC with EXPIRE NX, pre-7 fallback, SCAN,
       connection errors translated, command errors propagated
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from starlette.requests import Request

from campus_api.exceptions import CounterStoreUnavailable, ErrorKind
from campus_api.middleware.context import (
    Ok,
    RateLimitConfig,
    Rejected,
    RequestContext,
    Route,
    RouteConfig,
)
from campus_api.middleware.rate_limit import (
    RateLimiter,
    RateLimitSweeper,
    client_identity,
    reset_rate_limits,
)
from campus_api.services.counter_store import RedisCounterStore, build_counter_store

from conftest import FakeCounterStore, UnavailableCounterStore


def make_request(headers=None, client=("10.1.2.3", 5123)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/news",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def make_ctx(**kwargs) -> RequestContext:
    return RequestContext(request=make_request(**kwargs), request_id="deadbeef")


async def noop(ctx, data):
    return None


DEFAULT = RateLimitConfig(window_ms=900_000, max=3)


def redis_client(transaction_results):
    """A mocked redis.asyncio client whose MULTI/EXEC yields `transaction_results` in turn."""
    pipe = MagicMock()
    pipe.incr.return_value = pipe
    pipe.expire.return_value = pipe
    pipe.execute = AsyncMock(side_effect=transaction_results)
    pipe.__aenter__.return_value = pipe
    client = MagicMock()
    client.pipeline.return_value = pipe
    return client, pipe


class TestClientIdentity:
    def test_first_forwarded_hop_wins(self):
        request = make_request(headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert client_identity(request) == "203.0.113.7"

    def test_socket_peer_without_proxy_header(self):
        assert client_identity(make_request()) == "10.1.2.3"

    def test_unknown_without_any_address(self):
        assert client_identity(make_request(client=None)) == "unknown"


class TestRateLimiter:
    def setup_method(self):
        self.store = FakeCounterStore()
        self.limiter = RateLimiter(self.store, default=DEFAULT, key_prefix="rate_limit:")

    @pytest.mark.asyncio
    async def test_allows_up_to_max_then_rejects(self):
        route = Route(noop, RouteConfig())
        results = [await self.limiter(make_ctx(), route) for _ in range(4)]

        assert results[:3] == [Ok(1), Ok(2), Ok(3)]
        assert isinstance(results[3], Rejected)
        assert results[3].kind is ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_ttl_set_only_when_counter_is_created(self):
        route = Route(noop, RouteConfig())
        for _ in range(3):
            await self.limiter(make_ctx(), route)

        assert self.store.expire_calls == [("rate_limit:10.1.2.3", 900)]

    @pytest.mark.asyncio
    async def test_route_config_overrides_default(self):
        config = RouteConfig(
            rate_limit=RateLimitConfig(window_ms=60_000, max=1, key_prefix="rate_limit:login:")
        )
        route = Route(noop, config)

        first = await self.limiter(make_ctx(), route)
        second = await self.limiter(make_ctx(), route)

        assert first == Ok(1)
        assert isinstance(second, Rejected)
        assert self.store.ttls == {"rate_limit:login:10.1.2.3": 60}

    @pytest.mark.asyncio
    async def test_clients_are_counted_separately(self):
        route = Route(noop, RouteConfig(rate_limit=RateLimitConfig(max=1)))

        a = await self.limiter(make_ctx(headers={"X-Forwarded-For": "1.1.1.1"}), route)
        b = await self.limiter(make_ctx(headers={"X-Forwarded-For": "2.2.2.2"}), route)

        assert a == Ok(1) and b == Ok(1)

    @pytest.mark.asyncio
    async def test_store_outage_fails_open(self):
        limiter = RateLimiter(UnavailableCounterStore(), default=DEFAULT)
        result = await limiter(make_ctx(), Route(noop, RouteConfig()))
        assert result == Ok()

    @pytest.mark.asyncio
    async def test_missing_store_fails_open(self):
        limiter = RateLimiter(None, default=DEFAULT)
        result = await limiter(make_ctx(), Route(noop, RouteConfig()))
        assert result == Ok()

    def test_window_seconds_never_below_one(self):
        assert RateLimitConfig(window_ms=1_500).window_seconds == 1
        assert RateLimitConfig(window_ms=500).window_seconds == 1


class TestCleanup:
    @pytest.mark.asyncio
    async def test_reset_removes_only_prefixed_keys(self):
        store = FakeCounterStore()
        for key in ("rate_limit:1.1.1.1", "rate_limit:login:2.2.2.2", "session:abc"):
            await store.increment(key)

        removed = await reset_rate_limits(store, "rate_limit:")

        assert removed == 2
        assert list(store.counters) == ["session:abc"]

    @pytest.mark.asyncio
    async def test_reset_with_unavailable_store_returns_zero(self):
        assert await reset_rate_limits(UnavailableCounterStore(), "rate_limit:") == 0

    @pytest.mark.asyncio
    async def test_reset_without_store_returns_zero(self):
        assert await reset_rate_limits(None, "rate_limit:") == 0

    @pytest.mark.asyncio
    async def test_sweeper_disabled_by_zero_interval(self):
        sweeper = RateLimitSweeper(FakeCounterStore(), "rate_limit:", interval=0)
        sweeper.start()
        assert not sweeper.running
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_sweeper_clears_counters_periodically(self):
        store = FakeCounterStore()
        await store.increment("rate_limit:1.1.1.1")
        sweeper = RateLimitSweeper(store, "rate_limit:", interval=0.01)

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert store.counters == {}
        assert not sweeper.running


class TestRedisCounterStore:
    @pytest.mark.asyncio
    async def test_redis_errors_become_unavailable(self):
        client = MagicMock()
        client.incr = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        store = RedisCounterStore(client)

        with pytest.raises(CounterStoreUnavailable):
            await store.increment("rate_limit:1.1.1.1")

    @pytest.mark.asyncio
    async def test_delete_without_keys_skips_round_trip(self):
        client = MagicMock()
        client.delete = AsyncMock()
        await RedisCounterStore(client).delete()
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ping_and_close_delegate_to_client(self):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        store = RedisCounterStore(client)

        assert await store.ping() is True
        await store.close()
        client.aclose.assert_awaited_once()

    def test_empty_url_disables_store(self):
        assert build_counter_store("") is None

    def test_url_builds_lazy_redis_store(self):
        store = build_counter_store("redis://localhost:6399/0")
        assert isinstance(store, RedisCounterStore)

    @pytest.mark.asyncio
    async def test_increment_and_expire_is_one_transaction(self):
        client, pipe = redis_client([[1, True]])
        store = RedisCounterStore(client)

        count = await store.increment_and_expire("rate_limit:1.1.1.1", 900)

        assert count == 1
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.incr.assert_called_once_with("rate_limit:1.1.1.1")
        # NX: later increments in the window leave the TTL alone
        pipe.expire.assert_called_once_with("rate_limit:1.1.1.1", 900, nx=True)

    @pytest.mark.asyncio
    async def test_limiter_over_redis_rejects_max_plus_one(self):
        client, _ = redis_client([[1, True], [2, False], [3, False]])
        limiter = RateLimiter(RedisCounterStore(client), default=RateLimitConfig(max=2))
        route = Route(noop, RouteConfig())

        results = [await limiter(make_ctx(), route) for _ in range(3)]

        assert results[:2] == [Ok(1), Ok(2)]
        assert isinstance(results[2], Rejected)
        assert results[2].kind is ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_server_without_expire_nx_falls_back_to_two_steps(self):
        client, pipe = redis_client(ResponseError("wrong number of arguments for 'expire' command"))
        client.incr = AsyncMock(side_effect=[1, 2, 3])
        client.expire = AsyncMock()
        limiter = RateLimiter(RedisCounterStore(client), default=RateLimitConfig(max=2))
        route = Route(noop, RouteConfig())

        results = [await limiter(make_ctx(), route) for _ in range(3)]

        assert results[:2] == [Ok(1), Ok(2)]
        assert isinstance(results[2], Rejected)
        client.expire.assert_awaited_once_with("rate_limit:10.1.2.3", 900)
        # The rejected transaction is not retried on every request
        assert pipe.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_error_in_transaction_is_unavailable(self):
        client, _ = redis_client(RedisConnectionError("Connection refused"))

        with pytest.raises(CounterStoreUnavailable):
            await RedisCounterStore(client).increment_and_expire("rate_limit:1.1.1.1", 900)

    @pytest.mark.asyncio
    async def test_command_errors_propagate(self):
        client = MagicMock()
        client.incr = AsyncMock(side_effect=ResponseError("WRONGTYPE Operation against a key"))

        with pytest.raises(ResponseError):
            await RedisCounterStore(client).increment("rate_limit:1.1.1.1")

    @pytest.mark.asyncio
    async def test_keys_use_scan(self):
        async def scan_iter(match):
            for key in ("rate_limit:1.1.1.1", "rate_limit:login:2.2.2.2"):
                yield key

        client = MagicMock()
        client.scan_iter = MagicMock(side_effect=scan_iter)

        keys = await RedisCounterStore(client).keys("rate_limit:*")

        assert keys == ["rate_limit:1.1.1.1", "rate_limit:login:2.2.2.2"]
        client.scan_iter.assert_called_once_with(match="rate_limit:*")
