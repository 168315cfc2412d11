"""Tests for cached page fetching, block detection and the detail circuit breaker."""

import httpx
import pytest

from boardscout.ingest import fetcher as fetcher_module
from boardscout.ingest.content_analyzer import analyze_content
from boardscout.ingest.fetcher import DetailFetcher, PageFetcher
from boardscout.ingest.http_client import BlockedError

SOURCE = "retailer:evo"
GOOD_PAGE = "<html><head><title>Custom Camber</title></head><body>" + "specs " * 1000 + "</body></html>"
CHALLENGE_PAGE = "<html><head><title>Just a moment...</title></head><body>cf-challenge</body></html>"


class Site:
    """Mock site: path -> (status, body), with a request log."""

    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def __call__(self, request):
        self.requests.append(request.url.path)
        status, body = self.pages.get(request.url.path, (404, ""))
        return httpx.Response(status, text=body)


def test_analyze_content():
    assert analyze_content(GOOD_PAGE).is_blocked is False

    blocked = analyze_content(CHALLENGE_PAGE)
    assert blocked.is_blocked is True
    assert blocked.block_type == "marker"
    assert blocked.page_title == "Just a moment..."

    small = analyze_content("<html>tiny</html>", min_bytes=5000)
    assert small.block_type == "undersized"

    # Big pages only trust the title
    big = "<html><head><title>Boards</title></head><body>" + "x" * 60_000 + " captcha</body></html>"
    assert analyze_content(big).is_blocked is False


@pytest.mark.asyncio
async def test_page_fetcher_caches_and_counts_network(cache):
    site = Site({"/custom": (200, GOOD_PAGE)})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        pages = PageFetcher(client, cache)
        assert await pages.fetch("https://evo.test/custom", SOURCE) == GOOD_PAGE
        assert await pages.fetch("https://evo.test/custom", SOURCE) == GOOD_PAGE

    assert pages.network_requests == 1
    assert site.requests == ["/custom"]


@pytest.mark.asyncio
async def test_page_fetcher_rejects_block_pages_without_caching(cache):
    site = Site({"/wall": (200, CHALLENGE_PAGE)})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        pages = PageFetcher(client, cache)
        with pytest.raises(BlockedError) as exc_info:
            await pages.fetch("https://evo.test/wall", SOURCE)

    assert exc_info.value.block_type == "marker"
    assert await cache.get("https://evo.test/wall") is None


@pytest.mark.asyncio
async def test_circuit_opens_on_block_and_stays_open(cache):
    site = Site({"/wall": (200, CHALLENGE_PAGE), "/custom": (200, GOOD_PAGE)})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        detail = DetailFetcher(PageFetcher(client, cache), SOURCE, delay_seconds=0, min_bytes=0)

        assert await detail.fetch("https://evo.test/wall") is None
        assert detail.is_open is True
        assert "block page" in detail.open_reason

        # Open breaker: no further network requests this run
        assert await detail.fetch("https://evo.test/custom") is None
        assert site.requests == ["/wall"]

        detail.reset()
        assert await detail.fetch("https://evo.test/custom") == GOOD_PAGE
        assert site.requests == ["/wall", "/custom"]


@pytest.mark.asyncio
async def test_http_error_opens_circuit(cache):
    site = Site({"/custom": (403, "forbidden")})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        detail = DetailFetcher(PageFetcher(client, cache), SOURCE, delay_seconds=0, min_bytes=0)
        assert await detail.fetch("https://evo.test/custom") is None
    assert detail.is_open is True


@pytest.mark.asyncio
async def test_undersized_detail_page_opens_circuit(cache):
    site = Site({"/custom": (200, "<html>Please wait</html>")})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        detail = DetailFetcher(PageFetcher(client, cache), SOURCE, delay_seconds=0, min_bytes=1000)
        assert await detail.fetch("https://evo.test/custom") is None
    assert detail.is_open is True


@pytest.mark.asyncio
async def test_cached_pages_skip_delay_and_open_circuit(cache, monkeypatch):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(fetcher_module.asyncio, "sleep", fake_sleep)
    await cache.set("https://evo.test/cached", GOOD_PAGE)

    site = Site({"/fresh": (200, GOOD_PAGE)})
    async with httpx.AsyncClient(transport=httpx.MockTransport(site)) as client:
        detail = DetailFetcher(PageFetcher(client, cache), SOURCE, delay_seconds=2.5, min_bytes=0)

        assert await detail.fetch("https://evo.test/cached") == GOOD_PAGE
        assert sleeps == []

        assert await detail.fetch("https://evo.test/fresh") == GOOD_PAGE
        assert sleeps == [2.5]

        detail.is_open = True
        assert await detail.fetch("https://evo.test/cached") == GOOD_PAGE
        assert site.requests == ["/fresh"]


@pytest.mark.asyncio
async def test_dropped_connection_opens_circuit(cache, monkeypatch):
    async def fake_sleep(seconds):
        pass

    monkeypatch.setattr(fetcher_module.asyncio, "sleep", fake_sleep)

    def handler(request):
        raise httpx.ReadError("connection reset", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        detail = DetailFetcher(PageFetcher(client, cache), SOURCE, delay_seconds=0, min_bytes=0)
        assert await detail.fetch("https://evo.test/custom") is None
    assert detail.is_open is True
    assert "ReadError" in detail.open_reason
