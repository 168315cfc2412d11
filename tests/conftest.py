"""Shared fixtures: in-memory catalog database, store and HTTP cache."""

import os

# Keep the application engine off the on-disk database during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HTTP_CACHE_ENABLED", "true")

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from boardscout.db.models import Base
from boardscout.db.store import SqlCatalogStore
from boardscout.ingest.http_cache import HTTPCache


async def _memory_session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _memory_session_factory()
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory):
    return SqlCatalogStore(session_factory)


@pytest_asyncio.fixture
async def cache(session_factory):
    return HTTPCache(session_factory, enabled=True)


@pytest_asyncio.fixture
async def store_factory():
    """Build independent stores, each on its own in-memory database."""
    engines = []

    async def make():
        engine, factory = await _memory_session_factory()
        engines.append(engine)
        return SqlCatalogStore(factory)

    yield make
    for engine in engines:
        await engine.dispose()
