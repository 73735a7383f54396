"""Shared pytest fixtures for idlink tests."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from idlink.db import create_schema
from idlink.resolution import IdentityEngine
from idlink.storage import ContactStoreProvider, KeyedLocks

from tests.fixtures import MemoryContactStore, MemoryStoreProvider


# =========================
# In-memory store
# =========================


@pytest.fixture
def memory_store() -> MemoryContactStore:
    """Empty in-memory contact store."""
    return MemoryContactStore()


@pytest.fixture
def memory_provider(memory_store) -> MemoryStoreProvider:
    """Unit-of-work provider over the in-memory store."""
    return MemoryStoreProvider(memory_store)


@pytest.fixture
def memory_engine(memory_provider) -> IdentityEngine:
    """Identity engine backed by the in-memory store."""
    return IdentityEngine(provider=memory_provider)


# =========================
# SQLite store
# =========================


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    """File-backed aiosqlite engine with the contacts table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'idlink.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_provider(sqlite_engine) -> ContactStoreProvider:
    """Unit-of-work provider over the SQLite database."""
    return ContactStoreProvider(engine=sqlite_engine, locks=KeyedLocks())


@pytest.fixture
def sql_engine(sql_provider) -> IdentityEngine:
    """Identity engine backed by the SQLite database."""
    return IdentityEngine(provider=sql_provider)
