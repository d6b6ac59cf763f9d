"""
Async database engine and sessions for the API and the Celery workers

The API gets one session per request through get_db. Celery tasks run
their coroutine bodies with session_scope. Postgres runs behind a sized
connection pool; SQLite (local runs and tests) takes no pool options.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from app.core.config import settings

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> Dict[str, Any]:
    """Engine keyword arguments for a database URL."""
    options: Dict[str, Any] = {"echo": settings.debug}
    if database_url.startswith("sqlite"):
        return options

    options.update(
        pool_size=int(os.getenv("DB_POOL_SIZE", settings.db_pool_size)),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", settings.db_max_overflow)),
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=30,
    )
    return options


async_engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# Services keep using loaded rows after committing (invitation delivery, rotation)
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session for FastAPI dependency injection.

    Services commit their own units of work; anything left open when a
    request fails is rolled back here.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for one Celery task run."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            logger.warning("Rolling back task session after error")
            await session.rollback()
            raise
