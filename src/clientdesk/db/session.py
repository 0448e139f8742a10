"""Async SQLAlchemy session management."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clientdesk.config import settings

logger = logging.getLogger(__name__)

_engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
if not settings.database_url_async.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_async_engine(settings.database_url_async, **_engine_kwargs)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database connection pool (called on app startup)."""
    async with engine.begin() as conn:
        await conn.run_sync(lambda _: None)


async def close_db() -> None:
    """Close the database engine (called on app shutdown)."""
    await engine.dispose()


async def check_database_health() -> dict[str, Any]:
    """Run ``SELECT 1`` and report latency.

    Never raises; failures are reported in the returned dict.
    """
    started = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database health check failed: %s", exc)
        return {
            "healthy": False,
            "latencyMs": round((time.perf_counter() - started) * 1000, 2),
            "error": str(exc),
        }
    return {
        "healthy": True,
        "latencyMs": round((time.perf_counter() - started) * 1000, 2),
        "error": None,
    }
