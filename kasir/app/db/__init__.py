"""Database engines and session helpers.

The primary DSN comes from :class:`config.Settings`. When the primary server
cannot be reached at startup and ``db_fallback_to_memory`` is enabled,
:func:`resolve_engine` returns an in-memory SQLite engine carrying the same
schema so a single terminal can keep taking orders. The decision is made once
per process and handed to the application through ``app.state``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from config import get_settings

from ..models import Base
from ..obs import add_query_logger

logger = logging.getLogger(__name__)

MEMORY_DSN = "sqlite+aiosqlite://"


def _memory_engine() -> AsyncEngine:
    # A static pool keeps one connection so every session sees the same data.
    engine = create_async_engine(
        MEMORY_DSN,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    add_query_logger(engine, "memory")
    return engine


@lru_cache
def primary_engine() -> AsyncEngine:
    """Return the engine for the configured ``database_url``."""

    url = get_settings().database_url
    if url.startswith("sqlite") and ":memory:" not in url and url != MEMORY_DSN:
        engine = create_async_engine(url, connect_args={"check_same_thread": False})
    elif url.startswith("sqlite"):
        engine = create_async_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    add_query_logger(engine, "primary")
    return engine


@lru_cache
def fallback_engine() -> AsyncEngine:
    return _memory_engine()


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables on ``engine`` (used for in-memory databases)."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def resolve_engine() -> tuple[AsyncEngine, bool]:
    """Probe the primary database and return ``(engine, is_fallback)``.

    Raises the connection error when the primary is down and fallback is
    disabled.
    """

    settings = get_settings()
    engine = primary_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OperationalError, DBAPIError, OSError) as exc:
        if not settings.db_fallback_to_memory:
            raise
        logger.warning("primary database unavailable, using in-memory store: %s", exc)
        engine = fallback_engine()
        await init_models(engine)
        return engine, True
    if engine.url.drivername.startswith("sqlite") and engine.url.database in (
        None,
        "",
        ":memory:",
    ):
        await init_models(engine)
    return engine, False


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session from the resolved engine."""

    async with request.app.state.session_factory() as session:
        yield session


async def create_test_session() -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Return a session factory and engine backed by a fresh in-memory database."""

    engine = _memory_engine()
    await init_models(engine)
    return session_factory(engine), engine


__all__ = [
    "create_test_session",
    "fallback_engine",
    "get_session",
    "init_models",
    "primary_engine",
    "resolve_engine",
    "session_factory",
]
