"""
Database connection and session management.

Async SQLAlchemy engine and session factory creation. Engines are built
from settings by the DI container; SQLite URLs use ``NullPool`` so
connections are never shared across event loops.

@module core.database
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.pool import NullPool

from dicomvault.core.logging import get_logger
from dicomvault.models.database import Base

logger = get_logger(__name__)


def create_engine_for(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20
) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine.

    Args:
        database_url: Async database URL (e.g. ``sqlite+aiosqlite:///./dicomvault.db``)
        echo: Log SQL statements
        pool_size: Pool size for server databases
        max_overflow: Pool overflow for server databases
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(database_url, poolclass=NullPool, echo=echo)
        pooling = "NullPool"
    else:
        engine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,  # Health check on checkout
            echo=echo,
        )
        pooling = pool_size

    logger.info(
        "Database engine created",
        extra={
            "backend": url.get_backend_name(),
            "database": url.database,
            "pool_size": pooling
        }
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope: commit on success, roll back on error.

    Usage:
        async with session_scope(factory) as db:
            result = await db.execute(...)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database tables.

    Called on application startup; creates missing tables only.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool on shutdown."""
    await engine.dispose()
    logger.info("Database connection pool closed")


async def check_db_connection(engine: AsyncEngine) -> bool:
    """
    Health check for database connection.

    Returns:
        bool: True if connection is healthy.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
