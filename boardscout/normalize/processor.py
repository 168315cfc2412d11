"""Normalize raw listings and spec sheets into listings and spec claims."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from boardscout.config import settings
from boardscout.errors import ValidationError
from boardscout.ingest.base import RawListing, RawSpec
from boardscout.normalize.identity import BoardIdentity, gender_signal, infer_year, resolve
from boardscout.normalize.specs import (
    TERRAIN_FIELDS,
    category_terrain,
    infer_category,
    normalize_field_name,
    normalize_spec_value,
)
from boardscout.reconcile.claims import Claim

logger = logging.getLogger(__name__)

INFERRED_DESCRIPTION = "inferred:description"

# Largest value the Numeric(10, 2) price columns hold
MAX_PRICE = Decimal("99999999.99")
MAX_STOCK_COUNT = 2**31 - 1


@dataclass
class NormalizedListing:
    """Canonical listing, ready to be stored for a run."""

    board_key: str
    retailer: str
    url: str
    price: Decimal
    original_price: Decimal | None
    currency: str
    region: str
    discount_percent: int | None
    condition: str  # new, blemished, closeout, used, unknown
    gender: str  # unisex, womens, kids
    availability: str  # in_stock, low_stock, out_of_stock, unknown
    stock_count: int | None
    scraped_at: datetime
    title: str | None = None
    length_cm: float | None = None
    image_url: str | None = None
    price_usd: Decimal | None = None
    original_price_usd: Decimal | None = None


def parse_price(value: Any) -> Decimal:
    """
    Parse a scraped price.

    Accepts numbers and strings with currency symbols and thousands
    separators ("$1,299.95").

    Raises:
        ValidationError: If the price is missing, non-numeric, out of range, zero or negative
    """
    if value is None or value == "":
        raise ValidationError("No price")
    if isinstance(value, bool):
        raise ValidationError(f"Non-numeric price {value!r}")
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        text = re.sub(r"[^\d.,\-]", "", str(value)).replace(",", "")
    try:
        price = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"Non-numeric price {value!r}")
    if not price.is_finite():
        raise ValidationError(f"Non-numeric price {value!r}")
    if price < 0:
        raise ValidationError(f"Negative price {price}")
    if price == 0:
        raise ValidationError("Invalid price 0.00")
    try:
        price = price.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"Price out of range {value!r}")
    if price > MAX_PRICE:
        raise ValidationError(f"Price out of range {value!r}")
    return price


def convert_to_usd(amount: Optional[Decimal], currency: str) -> Optional[Decimal]:
    """
    Convert a listing amount to USD at the configured fixed rate.

    Returns None for currencies without a configured rate.
    """
    if amount is None:
        return None
    currency = currency.upper()
    if currency == "USD":
        return amount
    if currency == "KRW":
        rate = Decimal(str(settings.krw_to_usd_rate))
        return (amount * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return None


class ListingNormalizer:
    """Normalize and validate raw listings."""

    # Checked in order; first match wins
    CONDITION_KEYWORDS = [
        ("blemished", re.compile(r"\bblem(?:ished|ish)?\b", re.I)),
        ("used", re.compile(r"\b(?:used|pre-?owned|refurbished|demo)\b", re.I)),
        ("closeout", re.compile(r"\b(?:closeout|close-out|clearance|outlet)\b", re.I)),
    ]
    # Description text mentions "used" in unrelated senses
    DESCRIPTION_USED = re.compile(r"\b(?:pre-?owned|refurbished|used condition|used board)\b", re.I)

    STOCK_PATTERN = re.compile(r"(\d+)")

    def normalize_condition(
        self,
        explicit: Optional[str],
        url: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        """
        Condition: explicit field, then URL keyword, then title/description
        keyword, then "new". Explicit text that is present but unrecognized
        gives "unknown".
        """
        if explicit and explicit.strip():
            text = explicit.strip().lower()
            if text in ("new", "brand new"):
                return "new"
            for condition, pattern in self.CONDITION_KEYWORDS:
                if pattern.search(text):
                    return condition
            return "unknown"

        if url:
            for condition, pattern in self.CONDITION_KEYWORDS:
                if pattern.search(url):
                    return condition

        for text in (title, description):
            if not text:
                continue
            for condition, pattern in self.CONDITION_KEYWORDS:
                if condition == "used":
                    if self.DESCRIPTION_USED.search(text):
                        return condition
                elif pattern.search(text):
                    return condition

        return "new"

    def normalize_gender(self, raw: RawListing) -> str:
        """Explicit field, then title/model/URL, then description, then unisex."""
        return gender_signal(raw.gender, raw.title, raw.model, raw.url, raw.description)

    def parse_stock_count(self, raw: RawListing) -> Optional[int]:
        """
        Stock count from the explicit field or the availability text.

        Raises:
            ValidationError: If an explicit count is negative or not finite
        """
        value = raw.stock_count
        if isinstance(value, bool):
            value = None
        if isinstance(value, (int, float, Decimal)):
            if not isinstance(value, int) and not Decimal(value).is_finite():
                raise ValidationError(f"Non-finite stock count {value}")
            if value < 0:
                raise ValidationError(f"Negative stock count {value}")
            return self._bounded_stock(int(value))
        for text in (value, raw.availability):
            if isinstance(text, str):
                match = self.STOCK_PATTERN.search(text)
                if match:
                    return self._bounded_stock(int(match.group(1)))
        return None

    def _bounded_stock(self, count: int) -> int:
        if count > MAX_STOCK_COUNT:
            raise ValidationError(f"Stock count out of range {count}")
        return count

    def normalize_availability(self, availability: Optional[str], stock_count: Optional[int]) -> str:
        """Normalize availability string to canonical values."""
        status = "unknown"
        if availability:
            text = availability.lower().replace("-", " ")
            if "out of stock" in text or "out_of_stock" in text or "sold out" in text or "unavailable" in text:
                status = "out_of_stock"
            elif "low" in text or "limited" in text or "few left" in text or re.search(r"only \d+", text):
                status = "low_stock"
            elif "in stock" in text or "in_stock" in text or "instock" in text or "available" in text:
                status = "in_stock"

        if stock_count is not None:
            if stock_count == 0:
                return "out_of_stock"
            if stock_count <= 3 and status == "unknown":
                return "low_stock"
        return status

    def normalize(
        self,
        raw: RawListing,
        currency: Optional[str] = None,
        region: Optional[str] = None,
        identity: Optional[BoardIdentity] = None,
    ) -> NormalizedListing:
        """
        Normalize one raw listing.

        Args:
            raw: Raw listing from an adapter
            currency: Adapter's declared currency (wins over the record's)
            region: Adapter's declared region (wins over the record's)
            identity: Already-resolved identity; resolved here if omitted

        Returns:
            NormalizedListing

        Raises:
            ValidationError: If the sale price is malformed
            IdentityError: If brand or model cannot be resolved
        """
        price = parse_price(raw.price)

        original = None
        if raw.original_price not in (None, ""):
            try:
                original = parse_price(raw.original_price)
            except ValidationError as e:
                logger.debug(f"Dropping original price for {raw.url}: {e}")

        discount = None
        if original is not None and original > price:
            discount = int(((original - price) / original * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        gender = self.normalize_gender(raw)
        if identity is None:
            identity = resolve(raw.brand, raw.model or raw.title, gender, raw.url)

        stock_count = self.parse_stock_count(raw)
        listing_currency = (currency or raw.currency or settings.default_currency).upper()

        return NormalizedListing(
            board_key=identity.board_key,
            retailer=raw.retailer,
            url=raw.url,
            price=price,
            original_price=original,
            currency=listing_currency,
            region=(region or raw.region or settings.default_region).upper(),
            discount_percent=discount,
            condition=self.normalize_condition(raw.condition, raw.url, raw.title, raw.description),
            gender=gender,
            availability=self.normalize_availability(raw.availability, stock_count),
            stock_count=stock_count,
            scraped_at=raw.scraped_at,
            title=raw.title,
            length_cm=raw.length_cm,
            image_url=raw.image_url,
            price_usd=convert_to_usd(price, listing_currency),
            original_price_usd=convert_to_usd(original, listing_currency),
        )

    def resolve_identity(self, raw: RawListing) -> BoardIdentity:
        """Identity for a listing, using the listing's gender signal."""
        return resolve(raw.brand, raw.model or raw.title, self.normalize_gender(raw), raw.url)


def _extra_value(value: Any) -> Any:
    """Scalar form of an extras entry; lists join into one value, mappings are skipped."""
    if isinstance(value, (list, tuple, set)):
        items = [str(v).strip() for v in value if isinstance(v, (str, int, float, Decimal)) and str(v).strip()]
        return ", ".join(items) or None
    if isinstance(value, dict):
        return None
    return value


def _claims_from_fields(
    board_key: str,
    source: str,
    fields: dict[str, Any],
    source_url: Optional[str],
    observed_at: datetime,
    description: Optional[str],
    extras: Optional[dict[str, Any]] = None,
    profile_variant: Optional[str] = None,
) -> list[Claim]:
    claims: list[Claim] = []
    merged = {normalize_field_name(name): value for name, value in fields.items()}
    # Explicit spec fields win over extras of the same name
    for name, value in (extras or {}).items():
        merged.setdefault(normalize_field_name(name), _extra_value(value))
    # A profile named only in the model ("Custom Camber") still counts
    if profile_variant:
        merged.setdefault("profile", profile_variant)

    values: dict[str, str] = {}
    for field_name, raw_value in merged.items():
        value = normalize_spec_value(field_name, raw_value)
        if value is None:
            continue
        values[field_name] = value
        claims.append(Claim(board_key, field_name, source, value, source_url, observed_at))

    if not any(name in values for name in TERRAIN_FIELDS):
        for field_name, score in category_terrain(values.get("category")).items():
            claims.append(Claim(board_key, field_name, source, score, source_url, observed_at))

    if "category" not in values:
        inferred = infer_category(description)
        if inferred:
            claims.append(Claim(board_key, "category", INFERRED_DESCRIPTION, inferred, source_url, observed_at))
    return claims


def listing_claims(raw: RawListing, board_key: str, profile_variant: Optional[str] = None) -> list[Claim]:
    """Spec claims carried by a listing and its extras (retailer tier, plus inferred category)."""
    return _claims_from_fields(
        board_key, raw.source, raw.specs, raw.url, raw.scraped_at, raw.description, raw.extras, profile_variant
    )


def spec_claims(raw: RawSpec, board_key: str, profile_variant: Optional[str] = None) -> list[Claim]:
    """Spec claims from a spec sheet, attributed to its source."""
    return _claims_from_fields(
        board_key,
        raw.source,
        raw.specs,
        raw.source_url,
        raw.observed_at,
        raw.description,
        raw.extras,
        profile_variant,
    )


def resolve_spec_identity(raw: RawSpec) -> BoardIdentity:
    return resolve(raw.brand, raw.model, raw.gender, raw.source_url)


def year_of(raw: RawListing | RawSpec) -> Optional[int]:
    if raw.year:
        return raw.year
    return infer_year(getattr(raw, "title", None) or raw.model)
