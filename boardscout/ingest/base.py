"""Source adapter interface and the raw records adapters produce."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from boardscout.db.models import utcnow


class SourceType(str, Enum):
    """Source families, also the tier prefix of a source id."""

    RETAILER = "retailer"
    MANUFACTURER = "manufacturer"
    REVIEW_SITE = "review-site"


def source_id(source_type: SourceType, name: str) -> str:
    """Build a ``tier:name`` source id."""
    return f"{source_type.value}:{name.lower()}"


@dataclass
class RawListing:
    """
    One priced size variant as scraped from a retailer (or a manufacturer store).

    Only ``source`` and ``url`` are required; brand/model may be missing and
    are then rejected by identity resolution. Prices and stock are kept as
    scraped (numbers or text) and validated by the listing normalizer.
    Anything source-specific goes into ``extras``.
    """

    source: str  # "retailer:evo"
    url: str
    brand: Optional[str] = None
    model: Optional[str] = None
    title: Optional[str] = None
    price: Any = None  # Sale price as scraped
    original_price: Any = None  # Strikethrough/was price
    currency: Optional[str] = None
    region: Optional[str] = None
    condition: Optional[str] = None
    gender: Optional[str] = None
    availability: Optional[str] = None
    stock_count: Any = None
    description: Optional[str] = None
    length_cm: Optional[float] = None
    image_url: Optional[str] = None
    year: Optional[int] = None
    # Spec fields seen on the listing page (flex, profile, shape, category, ...)
    specs: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    scraped_at: datetime = None

    def __post_init__(self):
        if not self.url:
            raise ValueError("RawListing requires a url")
        if self.scraped_at is None:
            self.scraped_at = utcnow()

    @property
    def retailer(self) -> str:
        """Retailer name without the tier prefix."""
        return self.source.split(":", 1)[-1]


@dataclass
class RawSpec:
    """One source's spec sheet for one board model."""

    source: str  # "manufacturer:burton", "review-site:the-good-ride"
    brand: str
    model: str
    specs: dict[str, Any] = field(default_factory=dict)
    source_url: Optional[str] = None
    gender: Optional[str] = None
    year: Optional[int] = None
    description: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)
    observed_at: datetime = None

    def __post_init__(self):
        if not self.brand and not self.model and not self.source_url:
            raise ValueError("RawSpec requires brand and model, or a source_url")
        if self.observed_at is None:
            self.observed_at = utcnow()


@dataclass
class SearchOptions:
    """Listing search scope passed to retailer adapters."""

    query: str = "snowboard"
    brands: Optional[list[str]] = None
    max_pages: int = 5


@dataclass
class SpecTarget:
    """A board an enrichment source should look up."""

    brand: str
    model: str
    board_key: Optional[str] = None


class SourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses set ``name`` and ``source_type``; ``source`` is the derived
    ``tier:name`` id. Adapters fetch through the shared ``PageFetcher`` passed
    at construction and may raise ``FetchError`` or ``ParseError``: the run
    orchestrator isolates those per adapter.
    """

    name: str = ""
    source_type: SourceType = SourceType.RETAILER
    base_url: str = ""
    region: Optional[str] = None
    currency: Optional[str] = None

    @property
    def source(self) -> str:
        return source_id(self.source_type, self.name)

    async def search_listings(self, options: SearchOptions) -> list[RawListing]:
        """
        Search the source for board listings.

        Returns:
            Raw listings, one per size variant
        """
        return []

    async def scrape_specs(self, targets: Optional[list[SpecTarget]] = None) -> list[RawSpec]:
        """
        Scrape spec sheets.

        Args:
            targets: Boards to look up (review sites); None means the
                source's whole catalog

        Returns:
            Raw spec records
        """
        return []

    @abstractmethod
    async def fetch_detail(self, url: str) -> Optional[str]:
        """
        Fetch a detail page.

        Returns:
            Page body, or None when unavailable (block, open circuit)
        """
        pass

    def reset_for_run(self) -> None:
        """Reset per-run state such as the detail circuit breaker."""
        pass
