"""Shared page fetching for adapters: cache, site policy, block detection.

``PageFetcher`` is the single network path every adapter goes through. It
consults the HTTP cache, fetches with the per-source policy on a miss, rejects
block pages and caches what it accepts. ``DetailFetcher`` adds the per-source
inter-request delay and a circuit breaker for rate-limit-sensitive detail pages.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from boardscout import metrics
from boardscout.config import settings
from boardscout.ingest.content_analyzer import analyze_content
from boardscout.ingest.http_cache import HTTPCache
from boardscout.ingest.http_client import (
    BlockedError,
    FetchError,
    fetch_with_policy,
    get_policy_for_source,
)

logger = logging.getLogger(__name__)

_USE_DEFAULT = object()


class PageFetcher:
    """Cache-aware fetcher shared by all adapters in a run."""

    def __init__(self, client: httpx.AsyncClient, cache: Optional[HTTPCache] = None):
        self.client = client
        self.cache = cache
        # Requests that actually went to the network (cache hits excluded)
        self.network_requests = 0

    async def get_cached(self, url: str, max_age_seconds=_USE_DEFAULT) -> Optional[str]:
        """Return the cached body for a URL without touching the network."""
        if self.cache is None:
            return None
        if max_age_seconds is _USE_DEFAULT:
            max_age_seconds = settings.http_cache_max_age_seconds
        return await self.cache.get(url, max_age_seconds=max_age_seconds)

    async def fetch(
        self,
        url: str,
        source: str,
        max_age_seconds=_USE_DEFAULT,
        min_bytes: int = 0,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """
        Fetch a page body, serving from cache when fresh.

        Args:
            url: URL to fetch
            source: Source id used for policy lookup, logs and metrics
            max_age_seconds: Cache freshness bound (default from settings,
                None accepts any age, 0 forces a refetch)
            min_bytes: Bodies shorter than this count as blocks
            headers: Extra request headers

        Returns:
            Response body

        Raises:
            FetchError: On network failure, exhausted retries or a block page
        """
        cached = await self.get_cached(url, max_age_seconds)
        if cached is not None:
            metrics.record_cache_hit(source)
            return cached
        if self.cache is not None:
            metrics.record_cache_miss(source)

        policy = get_policy_for_source(source)
        start = time.monotonic()
        self.network_requests += 1
        try:
            resp = await fetch_with_policy(self.client, url, policy, headers=headers)
        except BlockedError as e:
            metrics.record_block(source, e.block_type)
            metrics.record_fetch_error(source, "blocked", time.monotonic() - start)
            raise
        except FetchError as e:
            metrics.record_fetch_error(source, type(e).__name__, time.monotonic() - start)
            raise

        body = resp.text
        analysis = analyze_content(body, min_bytes=min_bytes)
        if analysis.is_blocked:
            metrics.record_block(source, analysis.block_type)
            metrics.record_fetch_error(source, "blocked", time.monotonic() - start)
            raise BlockedError(
                f"{source}: block page at {url} ({analysis.block_type}, "
                f"{analysis.content_length} bytes, title={analysis.page_title!r})",
                analysis.block_type,
            )

        metrics.record_fetch_success(source, time.monotonic() - start)
        if self.cache is not None:
            await self.cache.set(url, body)
        return body


class DetailFetcher:
    """
    Detail-page fetcher with inter-request delay and a circuit breaker.

    Once a detail response looks like a block, or fails outright, the breaker
    opens and every further detail request for this source returns None until
    ``reset()`` is called at the start of the next run. Cached pages are served
    even while the breaker is open and never pay the delay.
    """

    def __init__(
        self,
        pages: PageFetcher,
        source: str,
        delay_seconds: Optional[float] = None,
        min_bytes: Optional[int] = None,
    ):
        self.pages = pages
        self.source = source
        self.delay_seconds = settings.detail_delay_seconds if delay_seconds is None else delay_seconds
        self.min_bytes = settings.detail_min_body_bytes if min_bytes is None else min_bytes
        self.is_open = False
        self.open_reason: Optional[str] = None

    def reset(self) -> None:
        self.is_open = False
        self.open_reason = None

    async def fetch(self, url: str) -> Optional[str]:
        cached = await self.pages.get_cached(url)
        if cached is not None:
            metrics.record_cache_hit(self.source)
            return cached

        if self.is_open:
            logger.debug(f"{self.source}: circuit open, skipping {url}")
            return None

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        try:
            return await self.pages.fetch(url, self.source, min_bytes=self.min_bytes)
        except FetchError as e:
            self.is_open = True
            self.open_reason = str(e)
            metrics.detail_circuit_open_total.labels(source=self.source).inc()
            logger.warning(f"{self.source}: detail fetch failed, stopping detail requests for this run: {e}")
            return None
