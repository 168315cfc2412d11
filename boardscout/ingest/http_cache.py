"""URL-keyed HTTP response cache.

Stores raw fetched bodies with their fetch time in the catalog database so
that every run shares them. Entries are overwritten on refresh and never
evicted; a re-run against a warm cache issues no network requests.
"""

import asyncio
import hashlib
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boardscout.config import settings
from boardscout.db.models import HttpCacheEntry, utcnow

logger = logging.getLogger(__name__)


def url_hash(url: str) -> str:
    """Cache key for a URL."""
    return hashlib.sha256(url.encode()).hexdigest()


class HTTPCache:
    """
    HTTP response cache backed by the ``http_cache`` table.

    Stores:
    - Raw response body
    - Fetch timestamp (for max-age checks)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        enabled: Optional[bool] = None,
    ):
        self.session_factory = session_factory
        self.enabled = settings.http_cache_enabled if enabled is None else enabled
        # Serializes writes so concurrent adapter tasks never share a transaction
        self._lock = asyncio.Lock()

    async def get(self, url: str, max_age_seconds: Optional[float] = None) -> Optional[str]:
        """
        Get the cached body for a URL.

        Args:
            url: URL to look up
            max_age_seconds: Maximum acceptable age; None accepts any age,
                0 never matches

        Returns:
            Cached body or None if absent or too old
        """
        if not self.enabled:
            return None
        if max_age_seconds is not None and max_age_seconds <= 0:
            return None

        async with self.session_factory() as session:
            entry = await session.get(HttpCacheEntry, url_hash(url))

        if entry is None:
            return None

        if max_age_seconds is not None:
            age = utcnow() - entry.fetched_at
            if age > timedelta(seconds=max_age_seconds):
                logger.debug(f"Cache entry for {url} is stale ({age.total_seconds():.0f}s old)")
                return None

        logger.debug(f"Cache hit for {url}")
        return entry.body

    async def set(self, url: str, body: str) -> None:
        """
        Store a body for a URL, overwriting any previous entry.

        Args:
            url: URL of the content
            body: Response body to cache
        """
        if not self.enabled:
            return

        key = url_hash(url)
        async with self._lock:
            async with self.session_factory() as session:
                entry = await session.get(HttpCacheEntry, key)
                if entry is None:
                    session.add(HttpCacheEntry(url_hash=key, url=url, body=body, fetched_at=utcnow()))
                else:
                    entry.body = body
                    entry.fetched_at = utcnow()
                await session.commit()

        logger.debug(f"Cached {len(body)} bytes for {url}")

    async def invalidate(self, url: str) -> bool:
        """
        Remove the cached entry for a URL.

        Returns:
            True if an entry was removed
        """
        async with self._lock:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(HttpCacheEntry).where(HttpCacheEntry.url_hash == url_hash(url))
                )
                await session.commit()
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.debug(f"Invalidated cache for {url}")
        return removed

    async def clear(self) -> int:
        """
        Wipe all cache entries.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            async with self.session_factory() as session:
                result = await session.execute(delete(HttpCacheEntry))
                await session.commit()
        count = result.rowcount or 0
        logger.info(f"Cleared {count} HTTP cache entries")
        return count

    async def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with entry count, total body size and fetch time range
        """
        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(
                        func.count(HttpCacheEntry.url_hash),
                        func.coalesce(func.sum(func.length(HttpCacheEntry.body)), 0),
                        func.min(HttpCacheEntry.fetched_at),
                        func.max(HttpCacheEntry.fetched_at),
                    )
                )
            ).one()

        return {
            "enabled": self.enabled,
            "cached_urls": row[0],
            "total_bytes": int(row[1]),
            "oldest_fetch": row[2],
            "newest_fetch": row[3],
            "default_max_age_seconds": settings.http_cache_max_age_seconds,
        }
