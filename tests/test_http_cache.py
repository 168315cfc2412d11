"""Tests for the URL-keyed HTTP response cache."""

from datetime import timedelta

import pytest

from boardscout.db.models import HttpCacheEntry, utcnow
from boardscout.ingest.http_cache import HTTPCache, url_hash

URL = "https://shop.test/collections/snowboards/products.json?page=1"


@pytest.mark.asyncio
async def test_set_and_get(cache):
    assert await cache.get(URL) is None
    await cache.set(URL, "body-1")
    assert await cache.get(URL) == "body-1"

    await cache.set(URL, "body-2")
    assert await cache.get(URL) == "body-2"


@pytest.mark.asyncio
async def test_max_age(cache, session_factory):
    await cache.set(URL, "body")
    assert await cache.get(URL, max_age_seconds=60) == "body"
    assert await cache.get(URL, max_age_seconds=0) is None

    async with session_factory() as session:
        entry = await session.get(HttpCacheEntry, url_hash(URL))
        entry.fetched_at = utcnow() - timedelta(hours=2)
        await session.commit()

    assert await cache.get(URL, max_age_seconds=3600) is None
    assert await cache.get(URL, max_age_seconds=None) == "body"


@pytest.mark.asyncio
async def test_disabled_cache(session_factory):
    cache = HTTPCache(session_factory, enabled=False)
    await cache.set(URL, "body")
    assert await cache.get(URL) is None
    assert (await cache.stats())["cached_urls"] == 0


@pytest.mark.asyncio
async def test_invalidate_clear_and_stats(cache):
    await cache.set(URL, "abc")
    await cache.set(URL + "2", "defgh")

    stats = await cache.stats()
    assert stats["enabled"] is True
    assert stats["cached_urls"] == 2
    assert stats["total_bytes"] == 8

    assert await cache.invalidate(URL) is True
    assert await cache.invalidate(URL) is False
    assert await cache.get(URL) is None

    assert await cache.clear() == 1
    assert (await cache.stats())["cached_urls"] == 0
