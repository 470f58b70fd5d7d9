"""
Unified Database Module
=======================
Async engine and session factory shared by the SQL-backed stores.
"""

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase
import structlog

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def create_async_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Call this once during application startup.

    Args:
        database_url: Async connection string (postgresql+asyncpg://... or sqlite+aiosqlite://)
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Max overflow connections (ignored for SQLite)
        pool_pre_ping: Enable connection health checks
        echo: Log SQL statements

    Returns:
        Configured AsyncEngine instance
    """
    if database_url.startswith("sqlite"):
        engine = sa_create_async_engine(database_url, echo=echo)
    else:
        engine = sa_create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            echo=echo,
        )

    logger.info("Database engine initialized", dialect=engine.dialect.name)
    return engine


def session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory with the settings every store expects."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create the core tables if they do not exist."""
    from skiadmin_core import models  # noqa: F401  registers the tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
