"""
Campus API — Database Session Management
=========================================

What:  Async SQLAlchemy engine, session factory, and the declarative Base.
Why:   Centralizes all database connection logic in one place.
How:   build_engine() creates an async engine from Settings; the application
       factory owns the engine and disposes it on shutdown.
Who:   create_app() builds the engine; SqlSessionProvider and NewsService
       receive the session factory.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour

    SQLite URLs (tests, local experiments) skip the pool arguments; the
    SQLite dialect uses its own pool classes.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from campus_api.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object, which Alembic reads for migrations.
    """
    pass


# ── Engine ────────────────────────────────────────────────────────────────
def build_engine(settings: Settings) -> AsyncEngine:
    kwargs = {"echo": settings.log_level == "DEBUG"}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(settings.database_url, **kwargs)


# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, outside the
# session context
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    One unit of work: commit on success, roll back on any error.

    Example:
        async with session_scope(factory) as session:
            session.add(News(...))
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine(engine: AsyncEngine) -> None:
    """Closes every pooled connection. Called from the application lifespan."""
    await engine.dispose()
    logger.info("Database engine disposed")
