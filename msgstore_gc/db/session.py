"""Message store handle management using SQLAlchemy async."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models to ensure they are registered with SQLModel metadata
import msgstore_gc.models  # noqa: F401
from msgstore_gc.config import DatabaseConfig
from msgstore_gc.errors import StoreConnectionError

logger = structlog.get_logger()


def create_store_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create the async engine for the message store (no I/O yet)."""
    return create_async_engine(
        config.get_url(),
        echo=config.echo,
        future=True,
    )


def _ensure_sqlite_file_exists(url: URL) -> None:
    """Refuse to connect to a SQLite file that is not there.

    The driver would silently create an empty database, and a collector
    attached to an empty store looks healthy while doing nothing.
    """
    if url.get_backend_name() != "sqlite":
        return
    database = url.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    if not Path(database).exists():
        raise StoreConnectionError(
            f"Message store file does not exist: {database}",
            details={"database": database},
        )


async def check_connection(engine: AsyncEngine) -> None:
    """Verify the store is reachable and the credentials are accepted.

    Raises:
        StoreConnectionError: store cannot be reached
    """
    _ensure_sqlite_file_exists(engine.url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        raise StoreConnectionError(
            f"Failed to connect to message store: {e}",
            details={"url": engine.url.render_as_string(hide_password=True)},
        ) from e


async def open_store(config: DatabaseConfig) -> AsyncEngine:
    """Create the engine and verify connectivity.

    The engine is disposed again if the check fails.

    Raises:
        StoreConnectionError: store cannot be reached
    """
    try:
        engine = create_store_engine(config)
    except (ArgumentError, ImportError) as e:
        # Malformed URL or driver not installed
        raise StoreConnectionError(f"Invalid message store URL: {e}") from e

    try:
        await check_connection(engine)
    except StoreConnectionError:
        await engine.dispose()
        raise

    logger.info(
        "db.connected",
        url=engine.url.render_as_string(hide_password=True),
    )
    return engine


async def close_store(engine: AsyncEngine) -> None:
    """Close the store handle."""
    await engine.dispose()
    logger.info("db.closed")


async def init_db(engine: AsyncEngine) -> None:
    """Create store tables that do not exist yet.

    Note: The gateway owns the production schema.
    This is for development/testing convenience.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Get async ORM session as context manager.

    Commits on success, rolls back on error.

    Usage:
        async with session_scope(engine) as session:
            session.add(row)
    """
    session_factory = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
