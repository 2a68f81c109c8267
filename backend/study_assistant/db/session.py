"""
Database session management.

Flow:
  1. A route depends on get_db(); it opens a session inside a transaction.
  2. The handler issues owner-scoped queries (every statement filters on the
     authenticated user's id; there is no row-level security underneath).
  3. On success the session commits after the handler returns; on any
     exception it rolls back and the error propagates to the handlers.
     Services may commit early (e.g. before publishing a task that reads
     the new rows); the session simply starts a new transaction.

Workers (Celery tasks, the recovery scanner) use session_scope() instead.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from study_assistant.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _build_engine(url: str) -> AsyncEngine:
    # sqlite (local dev, tests) does not take QueuePool sizing arguments
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.db_echo_sql)
    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,          # detect stale connections before use
        pool_recycle=3600,           # recycle connections every hour
        echo=settings.db_echo_sql,
    )


engine: AsyncEngine = _build_engine(settings.database_url)

# Session factory; expire_on_commit=False keeps ORM objects usable after commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a transactional session.

    Usage in a route:
        @router.get("/documents")
        async def list_docs(db: DB): ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Worker session (no request context)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for background work: the generation pipeline and the orphan
    scanner. Commits on clean exit, rolls back on error. Tests pass their
    own factory.
    """
    async with (factory or AsyncSessionLocal)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health() -> dict:
    """Ping the database; used by the /ready endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed | error=%s", exc)
        return {"status": "error"}
