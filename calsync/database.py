"""
Database engine and session management.

Everything runs on the async engine: request handlers get a session via
``get_async_session``, background sync tasks open their own through
``AsyncSessionLocal`` (or any factory from ``build_session_factory``).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from calsync.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if settings.is_production:
    settings.validate_production_config()


def async_database_url(url: str) -> str:
    """
    Rewrite a database URL to use an async driver.

    URLs that already name a driver are returned unchanged.
    """
    scheme, sep, rest = url.partition("://")
    if not sep or "+" in scheme:
        return url
    if scheme == "sqlite":
        return f"sqlite+aiosqlite://{rest}"
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+asyncpg://{rest}"
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for a database URL.

    SQLite connections get foreign key enforcement; PostgreSQL gets a
    small pre-pinged pool.
    """
    url = async_database_url(url)

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        pool_size=5,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Sync results outlive the session that produced them
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async_engine = build_engine(settings.database_url, echo=settings.log_level == "DEBUG")
AsyncSessionLocal = build_session_factory(async_engine)


@asynccontextmanager
async def session_scope(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Session that commits on success and rolls back on error.

    Usage for scripts and background tasks:
        async with session_scope() as session:
            integration = await get_integration(session, owner_id)
    """
    async with (session_factory or AsyncSessionLocal)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for a request-scoped session."""
    async with session_scope() as session:
        yield session


async def check_connection(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        async with (session_factory or AsyncSessionLocal)() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False
    return True


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables.

    For development and tests; deployments run ``alembic upgrade head``.
    """
    from calsync.models.base import Base

    logger.info("Creating database tables...")
    async with (engine or async_engine).begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
