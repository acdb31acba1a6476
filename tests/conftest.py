"""Shared fixtures: a throwaway SQLite message store per test."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from msgstore_gc.config import GCConfig
from msgstore_gc.db import init_db


@pytest.fixture
def store_url(tmp_path) -> str:
    """URL of a SQLite store file inside the test's tmp dir."""
    return f"sqlite+aiosqlite:///{tmp_path / 'message_store.db'}"


@pytest.fixture
async def engine(store_url: str):
    """Create the store schema and yield an engine bound to it."""
    engine = create_async_engine(store_url, echo=False)
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def gc_config() -> GCConfig:
    """Create a GC config for testing."""
    return GCConfig(
        enabled=True,
        run_on_startup=True,
        interval_seconds=1,
    )
