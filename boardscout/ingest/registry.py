"""Adapter registry: which sources exist and which ones a run uses."""

import logging
from typing import Callable, Optional

from boardscout.ingest.adapters.shopify import ShopifyAdapter
from boardscout.ingest.base import SourceAdapter, SourceType, source_id
from boardscout.ingest.fetcher import PageFetcher

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[PageFetcher], SourceAdapter]


class AdapterRegistry:
    """Registry of adapter factories keyed by source id."""

    def __init__(self):
        self._factories: dict[str, tuple[SourceType, AdapterFactory]] = {}

    def register(self, source_type: SourceType, name: str, factory: AdapterFactory) -> str:
        """
        Register an adapter factory.

        Args:
            source_type: Source family
            name: Source name (``evo``, ``burton``)
            factory: Callable building the adapter around the run's page fetcher

        Returns:
            The source id
        """
        sid = source_id(source_type, name)
        self._factories[sid] = (source_type, factory)
        logger.debug(f"Registered adapter: {sid}")
        return sid

    def list_sources(self, source_type: Optional[SourceType] = None) -> list[str]:
        """List registered source ids, optionally of one type."""
        return [
            sid for sid, (stype, _) in self._factories.items()
            if source_type is None or stype == source_type
        ]

    def source_type(self, sid: str) -> SourceType:
        return self._factories[sid][0]

    def select(
        self,
        retailers: Optional[list[str]] = None,
        manufacturers: Optional[list[str]] = None,
        sites: Optional[list[str]] = None,
    ) -> list[str]:
        """
        Resolve run options to source ids.

        ``sites`` (non-empty) selects exactly those sources, given as full
        ``tier:name`` ids or bare names. Otherwise ``retailers`` and
        ``manufacturers`` filter their own type: None keeps all, an empty list
        keeps none, a list keeps that subset. Review sites are always kept.

        Raises:
            ValueError: If ``sites`` names an unknown source
        """
        if sites:
            selected = []
            for site in sites:
                matches = [
                    sid for sid in self._factories
                    if sid == site.lower() or sid.split(":", 1)[1] == site.lower()
                ]
                if not matches:
                    raise ValueError(f"Unknown source: {site}. Available: {self.list_sources()}")
                selected.extend(m for m in matches if m not in selected)
            return selected

        wanted = {
            SourceType.RETAILER: retailers,
            SourceType.MANUFACTURER: manufacturers,
        }
        selected = []
        for sid, (stype, _) in self._factories.items():
            names = wanted.get(stype)
            if names is not None:
                lowered = {n.lower() for n in names}
                if sid not in lowered and sid.split(":", 1)[1] not in lowered:
                    continue
            selected.append(sid)
        return selected

    def create(self, sid: str, pages: PageFetcher) -> SourceAdapter:
        """Build the adapter for a source id."""
        if sid not in self._factories:
            raise ValueError(f"Unknown source: {sid}. Available: {self.list_sources()}")
        return self._factories[sid][1](pages)


def _shopify_brand(name: str, brand: str, base_url: str, collection: str = "snowboards") -> AdapterFactory:
    def factory(pages: PageFetcher) -> SourceAdapter:
        return ShopifyAdapter(name, base_url, pages, SourceType.MANUFACTURER, brand=brand, collection=collection)
    return factory


def build_default_registry() -> AdapterRegistry:
    """Registry with the bundled Shopify brand stores."""
    registry = AdapterRegistry()
    registry.register(
        SourceType.MANUFACTURER, "capita",
        _shopify_brand("capita", "CAPiTA", "https://www.capitasnowboarding.com", "all-snowboards"),
    )
    registry.register(
        SourceType.MANUFACTURER, "jones",
        _shopify_brand("jones", "Jones", "https://www.jonessnowboards.com"),
    )
    registry.register(
        SourceType.MANUFACTURER, "yes",
        _shopify_brand("yes", "Yes.", "https://www.yessnowboards.com"),
    )
    registry.register(
        SourceType.MANUFACTURER, "season",
        _shopify_brand("season", "Season", "https://seasoneqpt.com"),
    )
    return registry


default_registry = build_default_registry()
