"""Block-page detection for fetched bodies.

Anti-bot walls usually answer with a 200 and a tiny challenge page, so status
codes alone are not enough: the body is checked for known block markers and,
for HTML pages, for a suspiciously small size.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from selectolax.parser import HTMLParser

from boardscout.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ContentAnalysis:
    """Result of content analysis."""

    is_blocked: bool
    block_type: Optional[str]           # marker, undersized
    content_length: int
    page_title: Optional[str]           # Page title for debugging


def _page_title(body: str) -> Optional[str]:
    if "<title" not in body.lower():
        return None
    node = HTMLParser(body).css_first("title")
    if node is None:
        return None
    return node.text(strip=True) or None


def analyze_content(
    body: str,
    min_bytes: int = 0,
    markers: Optional[Iterable[str]] = None,
) -> ContentAnalysis:
    """
    Check whether a response body looks like a block page.

    Args:
        body: Response body
        min_bytes: Bodies shorter than this are treated as blocks (0 disables)
        markers: Case-insensitive block markers (defaults to settings.block_markers)

    Returns:
        ContentAnalysis describing the body
    """
    markers = settings.block_markers if markers is None else markers
    length = len(body)
    title = _page_title(body)

    if min_bytes and length < min_bytes:
        return ContentAnalysis(True, "undersized", length, title)

    # Markers are only trusted in small pages or the title; big catalog pages
    # mention "captcha" in unrelated scripts.
    haystack = body.lower() if length < 50_000 else (title or "").lower()
    for marker in markers:
        if marker.lower() in haystack:
            return ContentAnalysis(True, "marker", length, title)

    return ContentAnalysis(False, None, length, title)
