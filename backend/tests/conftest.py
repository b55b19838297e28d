"""
Campus API — Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures and in-memory fakes for the whole suite.
Why:   No test needs Redis or PostgreSQL: the counter store and session
       provider are replaced by fakes, and SQL services run on an in-memory
       SQLite database (aiosqlite).

Fixture Hierarchy (all function-scoped):
    ├── settings:          Settings for a development deployment, no Redis
    ├── counter_store:     FakeCounterStore (counters + TTL bookkeeping)
    ├── session_provider:  FakeSessionProvider with one token per role
    ├── db_engine:         in-memory SQLite engine with all tables created
    ├── session_factory:   async_sessionmaker bound to db_engine
    ├── app:               create_app() wired with the fakes above
    ├── test_client:       HTTPX AsyncClient over ASGITransport(app)
    └── client_factory:    builds a client for any ad-hoc ASGI app
"""

import fnmatch
import os
import uuid
from typing import Dict, List, Optional, Tuple

# Override settings BEFORE any campus_api import: the package builds a
# module-level Settings and app on import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from campus_api.config import Settings  # noqa: E402
from campus_api.database import Base, build_session_factory  # noqa: E402
from campus_api.exceptions import CounterStoreUnavailable  # noqa: E402
from campus_api.main import create_app  # noqa: E402
from campus_api.models import news as _news_models  # noqa: E402,F401
from campus_api.models import user as _user_models  # noqa: E402,F401
from campus_api.schemas.principal import Principal, Role  # noqa: E402
from campus_api.services.counter_store import CounterStore  # noqa: E402
from campus_api.services.session_provider import (  # noqa: E402
    SessionCredentials,
    SessionProvider,
)


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class FakeCounterStore(CounterStore):
    """
    In-memory counter store.

    Uses the base-class two-step increment_and_expire(), so tests can observe
    exactly when a TTL is set. Time does not pass on its own; call elapse()
    to expire every counter that has a TTL.
    """

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.ttls: Dict[str, int] = {}
        self.expire_calls: List[Tuple[str, int]] = []

    async def increment(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key: str, ttl_seconds: int) -> None:
        self.expire_calls.append((key, ttl_seconds))
        if key in self.counters:
            self.ttls[key] = ttl_seconds

    async def keys(self, pattern: str) -> List[str]:
        return [key for key in self.counters if fnmatch.fnmatchcase(key, pattern)]

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.counters.pop(key, None)
            self.ttls.pop(key, None)

    def elapse(self) -> None:
        for key in list(self.ttls):
            self.counters.pop(key, None)
            self.ttls.pop(key, None)


class UnavailableCounterStore(CounterStore):
    """Every operation fails the way an unreachable Redis does."""

    def __init__(self):
        self.attempts = 0

    async def _fail(self, *args, **kwargs):
        self.attempts += 1
        raise CounterStoreUnavailable("Counter store INCR failed: connection refused")

    increment = _fail
    expire = _fail
    keys = _fail
    delete = _fail


class FakeSessionProvider(SessionProvider):
    def __init__(self, sessions: Optional[Dict[str, Principal]] = None):
        self.sessions = dict(sessions or {})
        self.calls: List[SessionCredentials] = []

    async def resolve_session(self, credentials: SessionCredentials) -> Optional[Principal]:
        self.calls.append(credentials)
        return self.sessions.get(credentials.token)


class FailingSessionProvider(SessionProvider):
    async def resolve_session(self, credentials: SessionCredentials) -> Optional[Principal]:
        raise ConnectionError("session database unreachable")


# ══════════════════════════════════════════════════════════════════════════
# Principals & Tokens
# ══════════════════════════════════════════════════════════════════════════

ADMIN_TOKEN = "admin-token"
INSTRUCTOR_TOKEN = "instructor-token"
USER_TOKEN = "user-token"


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(id=uuid.uuid4(), name="Ada Admin", email="ada@campus.test", role=Role.ADMIN)


@pytest.fixture
def instructor_principal() -> Principal:
    return Principal(
        id=uuid.uuid4(), name="Ian Instructor", email="ian@campus.test", role=Role.INSTRUCTOR
    )


@pytest.fixture
def user_principal() -> Principal:
    return Principal(id=uuid.uuid4(), name="Uma User", email="uma@campus.test", role=Role.USER)


# ══════════════════════════════════════════════════════════════════════════
# Collaborators
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="",
        log_level="WARNING",
        rate_limit_window_ms=900_000,
        rate_limit_max=100,
    )


@pytest.fixture
def counter_store() -> FakeCounterStore:
    return FakeCounterStore()


@pytest.fixture
def session_provider(admin_principal, instructor_principal, user_principal) -> FakeSessionProvider:
    return FakeSessionProvider({
        ADMIN_TOKEN: admin_principal,
        INSTRUCTOR_TOKEN: instructor_principal,
        USER_TOKEN: user_principal,
    })


@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite with every table created.

    StaticPool keeps one connection alive, otherwise each new connection
    would see its own empty in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


# ══════════════════════════════════════════════════════════════════════════
# Application & Clients
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(settings, db_engine, counter_store, session_provider):
    return create_app(
        settings,
        engine=db_engine,
        counter_store=counter_store,
        session_provider=session_provider,
    )


@pytest.fixture
def client_factory():
    """
    Usage:
        async with client_factory(app) as client:
            response = await client.get("/x")
    """
    def make(app) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return make


@pytest_asyncio.fixture
async def test_client(app, client_factory):
    async with client_factory(app) as client:
        yield client
