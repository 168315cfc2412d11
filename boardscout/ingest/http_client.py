"""Centralized HTTP client with per-source policies and status-aware error handling."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Optional

import httpx

from boardscout.config import settings

logger = logging.getLogger(__name__)

# Retryable exceptions: timeouts, network and protocol errors
RETRYABLE_EXC = (httpx.TransportError,)


@dataclass(frozen=True)
class SitePolicy:
    """Per-source HTTP request policy configuration."""

    name: str
    max_attempts: int = 3
    timeout: httpx.Timeout = None  # Will be set to default if None
    treat_403_as_blocked: bool = True
    treat_404_as_permanent: bool = True
    treat_401_as_blocked: bool = True
    backoff_base_seconds: float = 2.0

    def __post_init__(self):
        """Set default timeout if not provided."""
        if self.timeout is None:
            object.__setattr__(
                self,
                'timeout',
                httpx.Timeout(
                    connect=settings.connection_timeout,
                    read=settings.read_timeout,
                    write=10.0,
                    pool=10.0,
                ),
            )


class FetchError(RuntimeError):
    """Base class for network, timeout and block failures."""
    pass


class BlockedError(FetchError):
    """Raised when access is blocked (403, 401, /blocked redirect or block page)."""

    def __init__(self, message: str, block_type: str = "blocked"):
        super().__init__(message)
        self.block_type = block_type


class PermanentURLError(FetchError):
    """Raised when URL is permanently invalid (404)."""
    pass


class TransientFetchError(FetchError):
    """Raised when fetch fails after retries (5xx, timeouts, etc.)."""
    pass


class RateLimitedError(FetchError):
    """Raised when rate limited (429)."""

    def __init__(self, retry_after: Optional[int] = None):
        super().__init__("Rate limited")
        self.retry_after = retry_after


def default_headers() -> dict[str, str]:
    """Get default browser-like headers with a rotated User-Agent."""
    return {
        "User-Agent": random.choice(settings.user_agents),
        "Accept": "text/html, application/xhtml+xml, application/xml; q=0.9, */*; q=0.8",
        "Accept-Language": "en-US, en; q=0.9",
        "Connection": "keep-alive",
    }


def _backoff(policy: SitePolicy, attempt: int) -> float:
    return policy.backoff_base_seconds * (2 ** (attempt - 1)) + random.random()


async def fetch_with_policy(
    client: httpx.AsyncClient,
    url: str,
    policy: SitePolicy,
    headers: Optional[dict[str, str]] = None,
) -> httpx.Response:
    """
    Fetch URL with per-source policy and status-aware error handling.

    Args:
        client: httpx AsyncClient instance
        url: URL to fetch
        policy: SitePolicy configuration
        headers: Optional additional headers (merged with defaults)

    Returns:
        httpx.Response on success

    Raises:
        BlockedError: If access is blocked (403, 401, or /blocked redirect)
        PermanentURLError: If URL is permanently invalid (404)
        RateLimitedError: If still rate limited after all attempts
        TransientFetchError: If fetch fails after retries
    """
    hdrs = default_headers()
    if headers:
        hdrs.update(headers)

    last_exc: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            resp = await client.get(
                url,
                headers=hdrs,
                timeout=policy.timeout,
                follow_redirects=True,
            )

            if "/blocked" in str(resp.url).lower():
                raise BlockedError(f"{policy.name}: blocked redirect: {resp.url}", "redirect")

            sc = resp.status_code

            if sc == 404 and policy.treat_404_as_permanent:
                raise PermanentURLError(f"{policy.name}: 404 for {url}")

            if (sc == 401 and policy.treat_401_as_blocked) or (sc == 403 and policy.treat_403_as_blocked):
                raise BlockedError(f"{policy.name}: {sc} for {url}", f"http_{sc}")

            if sc == 429:
                retry_after = resp.headers.get("Retry-After")
                retry_seconds = None
                if retry_after:
                    try:
                        retry_seconds = int(retry_after)
                    except (ValueError, TypeError):
                        pass
                raise RateLimitedError(retry_after=retry_seconds)

            if 200 <= sc < 300:
                return resp

            # 5xx and anything unexpected: transient, retried below
            raise TransientFetchError(f"{policy.name}: status {sc} for {url}")

        except RateLimitedError as e:
            if attempt >= policy.max_attempts:
                raise
            sleep_s = float(e.retry_after) if e.retry_after is not None else _backoff(policy, attempt)
            logger.warning(
                f"{policy.name}: Rate limited (429), retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            last_exc = e
            await asyncio.sleep(sleep_s)

        except RETRYABLE_EXC as e:
            if attempt >= policy.max_attempts:
                raise TransientFetchError(
                    f"{policy.name}: {type(e).__name__} after {policy.max_attempts} attempts: {url}"
                ) from e
            sleep_s = _backoff(policy, attempt)
            logger.warning(
                f"{policy.name}: Transport error ({type(e).__name__}), "
                f"retrying in {sleep_s:.1f}s (attempt {attempt}/{policy.max_attempts})"
            )
            last_exc = e
            await asyncio.sleep(sleep_s)

        except (BlockedError, PermanentURLError):
            # Don't retry these
            raise

        except TransientFetchError as e:
            if attempt >= policy.max_attempts:
                raise TransientFetchError(f"{e} after {policy.max_attempts} attempts") from e
            sleep_s = _backoff(policy, attempt)
            logger.warning(
                f"{policy.name}: Transient error, retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            last_exc = e
            await asyncio.sleep(sleep_s)

    raise TransientFetchError(
        f"{policy.name}: failed after {policy.max_attempts} attempts: {url}"
    ) from last_exc


def get_policy_for_source(source: str) -> SitePolicy:
    """
    Build the site policy for a source id.

    Starts from the default policy and applies any ``source_policies``
    override from settings (keys: max_attempts, connect_timeout, read_timeout,
    treat_403_as_blocked, treat_404_as_permanent, treat_401_as_blocked).

    Args:
        source: Source identifier (e.g., "retailer:rei")

    Returns:
        SitePolicy for the source
    """
    policy = SitePolicy(name=source, max_attempts=settings.http_max_attempts)
    overrides = settings.source_policies.get(source)
    if not overrides:
        return policy

    changes = {
        key: overrides[key]
        for key in ("max_attempts", "treat_403_as_blocked", "treat_404_as_permanent", "treat_401_as_blocked")
        if key in overrides
    }
    if "connect_timeout" in overrides or "read_timeout" in overrides:
        changes["timeout"] = httpx.Timeout(
            connect=float(overrides.get("connect_timeout", settings.connection_timeout)),
            read=float(overrides.get("read_timeout", settings.read_timeout)),
            write=10.0,
            pool=10.0,
        )
    return replace(policy, **changes)


def create_client() -> httpx.AsyncClient:
    """Create the shared AsyncClient used by all adapters."""
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_max_connections // 2,
        ),
        follow_redirects=True,
    )
