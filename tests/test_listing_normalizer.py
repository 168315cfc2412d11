"""Tests for listing normalization and claim extraction."""

from decimal import Decimal

import pytest

from boardscout.errors import IdentityError, ValidationError
from boardscout.ingest.base import RawListing, RawSpec
from boardscout.normalize.processor import (
    INFERRED_DESCRIPTION,
    ListingNormalizer,
    convert_to_usd,
    listing_claims,
    parse_price,
    spec_claims,
)


def _listing(**kwargs) -> RawListing:
    values = {
        "source": "retailer:evo",
        "url": "https://www.evo.com/snowboards/burton-custom-camber",
        "brand": "Burton",
        "model": "Custom Camber Snowboard 2025",
        "price": "$499.95",
    }
    values.update(kwargs)
    return RawListing(**values)


@pytest.fixture
def normalizer():
    return ListingNormalizer()


def test_parse_price():
    assert parse_price("$1,299.95") == Decimal("1299.95")
    assert parse_price(499) == Decimal("499.00")
    assert parse_price(Decimal("12.3")) == Decimal("12.30")


@pytest.mark.parametrize(
    "value",
    [None, "", "call for price", 0, "0.00", -5, True, 1e30, "9" * 30, "123456789.00", float("nan")],
)
def test_parse_price_rejects(value):
    with pytest.raises(ValidationError):
        parse_price(value)


def test_normalize_basic_listing(normalizer):
    listing = normalizer.normalize(_listing(length_cm=158.0))

    assert listing.board_key == "burton|custom"
    assert listing.retailer == "evo"
    assert listing.price == Decimal("499.95")
    assert listing.original_price is None
    assert listing.discount_percent is None
    assert listing.condition == "new"
    assert listing.gender == "unisex"
    assert listing.availability == "unknown"
    assert listing.currency == "USD"
    assert listing.region == "US"
    assert listing.length_cm == 158.0


def test_discount_is_rounded_half_up(normalizer):
    listing = normalizer.normalize(_listing(price="399.99", original_price="499.99"))
    assert listing.discount_percent == 20

    listing = normalizer.normalize(_listing(price="87.50", original_price="100"))
    assert listing.discount_percent == 13


def test_bad_original_price_is_dropped(normalizer):
    listing = normalizer.normalize(_listing(original_price="see cart"))
    assert listing.original_price is None
    assert listing.discount_percent is None


def test_original_below_sale_gives_no_discount(normalizer):
    listing = normalizer.normalize(_listing(price="500", original_price="450"))
    assert listing.original_price == Decimal("450.00")
    assert listing.discount_percent is None


def test_malformed_price_rejects_listing(normalizer):
    with pytest.raises(ValidationError):
        normalizer.normalize(_listing(price="free"))


def test_missing_brand_rejects_listing(normalizer):
    with pytest.raises(IdentityError):
        normalizer.normalize(_listing(brand=None))


def test_adapter_money_context_wins(normalizer):
    listing = normalizer.normalize(_listing(currency="usd", region="us"), currency="cad", region="ca")
    assert listing.currency == "CAD"
    assert listing.region == "CA"

    listing = normalizer.normalize(_listing(currency="eur", region="de"))
    assert listing.currency == "EUR"
    assert listing.region == "DE"


def test_condition(normalizer):
    assert normalizer.normalize_condition("Blemished") == "blemished"
    assert normalizer.normalize_condition("Brand New") == "new"
    assert normalizer.normalize_condition("like a dream") == "unknown"
    assert normalizer.normalize_condition(None, url="https://shop.test/closeout/custom") == "closeout"
    assert normalizer.normalize_condition(None, title="Custom (Blem)") == "blemished"
    assert normalizer.normalize_condition(None, description="A used board in great shape") == "used"
    assert normalizer.normalize_condition(None, description="Used by pros worldwide") == "new"
    assert normalizer.normalize_condition(None) == "new"


def test_availability(normalizer):
    assert normalizer.normalize_availability("In Stock", None) == "in_stock"
    assert normalizer.normalize_availability("Sold Out", None) == "out_of_stock"
    assert normalizer.normalize_availability("Only 2 left", 2) == "low_stock"
    assert normalizer.normalize_availability("In Stock", 0) == "out_of_stock"
    assert normalizer.normalize_availability(None, 2) == "low_stock"
    assert normalizer.normalize_availability(None, None) == "unknown"


def test_stock_count(normalizer):
    assert normalizer.parse_stock_count(_listing(stock_count=4)) == 4
    assert normalizer.parse_stock_count(_listing(availability="Only 3 left")) == 3
    assert normalizer.parse_stock_count(_listing()) is None
    with pytest.raises(ValidationError):
        normalizer.parse_stock_count(_listing(stock_count=-1))


@pytest.mark.parametrize("value", [float("nan"), float("inf"), Decimal("NaN"), 10**12])
def test_unusable_stock_count_rejects_listing(normalizer, value):
    with pytest.raises(ValidationError):
        normalizer.normalize(_listing(stock_count=value))


def test_gender_from_title(normalizer):
    listing = normalizer.normalize(
        _listing(model="Feelgood Camber", title="Burton Women's Feelgood Camber Snowboard")
    )
    assert listing.gender == "womens"
    assert listing.board_key == "burton|feelgood|womens"


def test_listing_claims():
    raw = _listing(
        specs={"Flex": "5/10", "Profile": "C2", "shape": None, "Weight": "3 kg"},
        description="A versatile all-mountain board for everyday riding",
    )
    claims = {(c.field, c.source): c.value for c in listing_claims(raw, "burton|custom")}

    assert claims == {
        ("flex", "retailer:evo"): "medium",
        ("profile", "retailer:evo"): "hybrid_camber",
        ("weight", "retailer:evo"): "3 kg",
        ("category", INFERRED_DESCRIPTION): "all_mountain",
    }


def test_explicit_category_suppresses_inference():
    raw = RawSpec(
        source="manufacturer:burton",
        brand="Burton",
        model="Custom",
        specs={"terrain": "Freestyle"},
        description="A versatile all-mountain board",
    )
    claims = spec_claims(raw, "burton|custom")
    assert [(c.field, c.source, c.value) for c in claims] == [
        ("category", "manufacturer:burton", "freestyle"),
        ("terrain_piste", "manufacturer:burton", "2"),
        ("terrain_powder", "manufacturer:burton", "1"),
        ("terrain_park", "manufacturer:burton", "2"),
        ("terrain_freeride", "manufacturer:burton", "1"),
        ("terrain_freestyle", "manufacturer:burton", "3"),
    ]


def test_explicit_terrain_scores_suppress_category_defaults():
    raw = RawSpec(
        source="manufacturer:jones",
        brand="Jones",
        model="Mountain Twin",
        specs={"category": "All-Mountain", "terrain_powder": "8/10", "terrain_park": "3/5"},
    )
    claims = {c.field: c.value for c in spec_claims(raw, "jones|mountain twin")}
    assert claims == {"category": "all_mountain", "terrain_powder": "3", "terrain_park": "2"}


def test_profile_variant_becomes_a_claim():
    raw = _listing(specs={})
    claims = {c.field: c.value for c in listing_claims(raw, "burton|custom", "flying v")}
    assert claims == {"profile": "hybrid_rocker"}

    raw = _listing(specs={"Profile": "Camber"})
    claims = {c.field: c.value for c in listing_claims(raw, "burton|custom", "flying v")}
    assert claims == {"profile": "camber"}


def test_extras_become_claims():
    raw = _listing(
        specs={"Flex": "6/10"},
        extras={"wide": "true", "flex": "2/10", "tags": ["Snowboards", "Park"], "raw": {"id": 7}},
    )
    claims = {c.field: c.value for c in listing_claims(raw, "burton|custom")}

    # Spec fields win over extras of the same name
    assert claims == {"flex": "medium-stiff", "wide": "true", "tags": "Snowboards, Park"}


def test_convert_to_usd():
    assert convert_to_usd(Decimal("499.95"), "usd") == Decimal("499.95")
    assert convert_to_usd(Decimal("659000"), "KRW") == Decimal("487.66")
    assert convert_to_usd(Decimal("499.95"), "EUR") is None
    assert convert_to_usd(None, "USD") is None


def test_krw_listing_gets_usd_prices(normalizer):
    listing = normalizer.normalize(
        _listing(price="₩659,000", original_price="₩799,000"), currency="KRW", region="KR"
    )
    assert listing.price == Decimal("659000.00")
    assert listing.currency == "KRW"
    assert listing.price_usd == Decimal("487.66")
    assert listing.original_price_usd == Decimal("591.26")
