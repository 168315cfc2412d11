"""Tests for the adapter registry and source selection."""

from typing import Optional

import pytest

from boardscout.ingest.adapters.shopify import ShopifyAdapter
from boardscout.ingest.base import SourceAdapter, SourceType, source_id
from boardscout.ingest.registry import AdapterRegistry, build_default_registry


class StubAdapter(SourceAdapter):
    def __init__(self, source_type: SourceType, name: str):
        self.source_type = source_type
        self.name = name

    async def fetch_detail(self, url: str) -> Optional[str]:
        return None


def _registry() -> AdapterRegistry:
    registry = AdapterRegistry()
    for source_type, name in [
        (SourceType.RETAILER, "evo"),
        (SourceType.RETAILER, "rei"),
        (SourceType.MANUFACTURER, "burton"),
        (SourceType.MANUFACTURER, "gnu"),
        (SourceType.REVIEW_SITE, "good-ride"),
    ]:
        registry.register(source_type, name, lambda pages, t=source_type, n=name: StubAdapter(t, n))
    return registry


def test_source_id():
    assert source_id(SourceType.REVIEW_SITE, "Good-Ride") == "review-site:good-ride"


def test_select_everything_by_default():
    assert _registry().select() == [
        "retailer:evo",
        "retailer:rei",
        "manufacturer:burton",
        "manufacturer:gnu",
        "review-site:good-ride",
    ]


def test_select_filters_per_type():
    registry = _registry()
    assert registry.select(retailers=["EVO"], manufacturers=[]) == ["retailer:evo", "review-site:good-ride"]
    assert registry.select(manufacturers=["manufacturer:gnu"], retailers=[]) == [
        "manufacturer:gnu",
        "review-site:good-ride",
    ]


def test_sites_override_type_filters():
    registry = _registry()
    assert registry.select(retailers=[], sites=["rei", "manufacturer:burton"]) == [
        "retailer:rei",
        "manufacturer:burton",
    ]


def test_unknown_site_raises():
    with pytest.raises(ValueError):
        _registry().select(sites=["backcountry"])


def test_create_and_list():
    registry = _registry()
    adapter = registry.create("retailer:evo", pages=None)
    assert adapter.source == "retailer:evo"
    assert registry.source_type("review-site:good-ride") == SourceType.REVIEW_SITE
    assert registry.list_sources(SourceType.MANUFACTURER) == ["manufacturer:burton", "manufacturer:gnu"]
    with pytest.raises(ValueError):
        registry.create("retailer:nope", pages=None)


def test_default_registry_brand_stores():
    registry = build_default_registry()
    assert registry.list_sources(SourceType.MANUFACTURER) == [
        "manufacturer:capita",
        "manufacturer:jones",
        "manufacturer:yes",
        "manufacturer:season",
    ]
    adapter = registry.create("manufacturer:capita", pages=None)
    assert isinstance(adapter, ShopifyAdapter)
    assert adapter.brand == "CAPiTA"
    assert adapter.collection == "all-snowboards"
