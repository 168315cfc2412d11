"""Generic adapter for Shopify storefronts exposing ``products.json``.

Many board brands (and some shops) run on Shopify, whose collection endpoint
returns structured product data: title, vendor, tags, HTML description and one
variant per size. Spec text is pulled out of the description; listings come
from the variants.
"""

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from selectolax.parser import HTMLParser

from boardscout.errors import ParseError
from boardscout.ingest.base import (
    RawListing,
    RawSpec,
    SearchOptions,
    SourceAdapter,
    SourceType,
    SpecTarget,
)
from boardscout.ingest.fetcher import DetailFetcher, PageFetcher

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250

NON_BOARD_WORDS = ("binding", "boot", "jacket", "pant", "glove", "beanie", "hoodie", "tee", "sticker", "wax", "leash")

_FLEX_RE = [
    re.compile(r"flex(?:\s+rating)?[:\s]+(\d+(?:\.\d+)?(?:\s*(?:/|out of)\s*10)?)", re.I),
    re.compile(r"flex[:\s]+((?:very\s+)?(?:soft|medium|stiff)(?:[\s-]+(?:soft|medium|stiff))?)", re.I),
]
_PROFILE_RE = re.compile(r"(?:profile|camber profile|bend)[:\s]+([\w\s/-]+?)(?:\.|,|\n|$)", re.I)
_SHAPE_RE = re.compile(r"shape[:\s]+([\w\s-]+?)(?:\.|,|\n|$)", re.I)
_ABILITY_RE = re.compile(
    r"(?:ability level|rider level|riding level|ability)[:\s]+"
    r"((?:beginner|intermediate|advanced|expert)(?:\s*(?:-|to|/)\s*(?:beginner|intermediate|advanced|expert))?)",
    re.I,
)
_SIZE_RE = re.compile(r"(\d{3}(?:\.\d+)?)\s*(W|UW|MW)?\b", re.I)
_CATEGORY_WORDS = [
    ("all-mountain", "all-mountain"),
    ("all mountain", "all-mountain"),
    ("freestyle", "freestyle"),
    ("freeride", "freeride"),
    ("powder", "powder"),
    ("park", "park"),
]


def html_to_text(body_html: Optional[str]) -> str:
    """Flatten a product description to text, one line per block."""
    if not body_html:
        return ""
    tree = HTMLParser(body_html)
    return tree.text(separator="\n").strip()


def parse_spec_text(text: str) -> dict[str, str]:
    """
    Extract spec fields from a product description.

    Returns:
        Raw (unnormalized) values keyed by field name
    """
    specs: dict[str, str] = {}
    if not text:
        return specs

    for pattern in _FLEX_RE:
        match = pattern.search(text)
        if match:
            specs["flex"] = match.group(1).strip()
            break

    match = _PROFILE_RE.search(text)
    if match:
        specs["profile"] = match.group(1).strip()

    match = _SHAPE_RE.search(text)
    if match:
        specs["shape"] = match.group(1).strip()

    match = _ABILITY_RE.search(text)
    if match:
        specs["ability_level"] = match.group(1).strip()

    lowered = text.lower()
    for word, category in _CATEGORY_WORDS:
        if word in lowered:
            specs["category"] = category
            break

    return specs


def _gender_from_product(product: dict[str, Any]) -> Optional[str]:
    haystack = " ".join(
        [product.get("product_type") or ""] + [str(t) for t in product.get("tags") or []]
    ).lower()
    if re.search(r"\b(women'?s?|womens|ladies)\b", haystack):
        return "womens"
    if re.search(r"\b(kids?|youth|junior|boys|girls)\b", haystack):
        return "kids"
    return None


def _price(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class ShopifyAdapter(SourceAdapter):
    """
    Adapter for one Shopify collection.

    Args:
        name: Source name (``capita``, ``yes``, ...)
        base_url: Store root, no trailing slash
        pages: Shared page fetcher
        source_type: Manufacturer for brand stores, retailer for shops
        brand: Fixed brand for manufacturer stores; shops use the product vendor
        collection: Collection handle holding the boards
        currency/region: Declared money context for listings
        max_pages: Pagination limit
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        pages: PageFetcher,
        source_type: SourceType = SourceType.MANUFACTURER,
        brand: Optional[str] = None,
        collection: str = "snowboards",
        currency: str = "USD",
        region: str = "US",
        max_pages: int = 5,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.pages = pages
        self.source_type = source_type
        self.brand = brand
        self.collection = collection
        self.currency = currency
        self.region = region
        self.max_pages = max_pages
        self.detail = DetailFetcher(pages, self.source)

    def reset_for_run(self) -> None:
        self.detail.reset()

    async def fetch_detail(self, url: str) -> Optional[str]:
        return await self.detail.fetch(url)

    def product_url(self, product: dict[str, Any]) -> str:
        return f"{self.base_url}/products/{product['handle']}"

    def is_board(self, product: dict[str, Any]) -> bool:
        product_type = (product.get("product_type") or "").lower()
        tags = [str(t).lower() for t in product.get("tags") or []]
        title = (product.get("title") or "").lower()
        if any(word in title for word in NON_BOARD_WORDS) and "snowboard" not in product_type:
            return False
        if "snowboard" in product_type or any("snowboard" in t for t in tags):
            return True
        # Brand stores with an untyped catalog only sell boards in this collection
        return product_type == "" and self.source_type == SourceType.MANUFACTURER

    async def fetch_products(self, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        """Walk the collection's ``products.json`` pages until an empty page."""
        products: list[dict[str, Any]] = []
        seen: set[str] = set()

        for page in range(1, (max_pages or self.max_pages) + 1):
            url = f"{self.base_url}/collections/{self.collection}/products.json?page={page}&limit={PAGE_LIMIT}"
            body = await self.pages.fetch(url, self.source)
            try:
                data = json.loads(body)
            except json.JSONDecodeError as e:
                raise ParseError(self.source, f"products.json page {page} is not JSON: {e}") from e

            if not isinstance(data, dict) or not isinstance(data.get("products"), list):
                raise ParseError(self.source, f"products.json page {page} has no product list")

            if not data["products"]:
                break

            for product in data["products"]:
                handle = product.get("handle")
                if not handle or handle in seen:
                    continue
                seen.add(handle)
                if self.is_board(product):
                    products.append(product)

        logger.info(f"{self.source}: {len(products)} boards in collection {self.collection}")
        return products

    def _brand_for(self, product: dict[str, Any]) -> Optional[str]:
        return self.brand or product.get("vendor")

    async def scrape_specs(self, targets: Optional[list[SpecTarget]] = None) -> list[RawSpec]:
        specs: list[RawSpec] = []
        for product in await self.fetch_products():
            text = html_to_text(product.get("body_html"))
            fields: dict[str, Any] = parse_spec_text(text)

            variants = product.get("variants") or []
            if variants:
                first = variants[0]
                msrp = _price(first.get("compare_at_price")) or _price(first.get("price"))
                if msrp is not None:
                    fields["msrp_usd"] = msrp

            specs.append(
                RawSpec(
                    source=self.source,
                    brand=self._brand_for(product),
                    model=product.get("title") or "",
                    specs=fields,
                    source_url=self.product_url(product),
                    gender=_gender_from_product(product),
                    description=text or None,
                    extras={"tags": product.get("tags") or []},
                )
            )
        return specs

    async def search_listings(self, options: SearchOptions) -> list[RawListing]:
        listings: list[RawListing] = []
        brands = {b.lower() for b in options.brands} if options.brands else None

        for product in await self.fetch_products(options.max_pages):
            brand = self._brand_for(product)
            if brands is not None and (brand or "").lower() not in brands:
                continue

            url = self.product_url(product)
            text = html_to_text(product.get("body_html"))
            specs = parse_spec_text(text)
            images = product.get("images") or []
            image_url = images[0].get("src") if images and isinstance(images[0], dict) else None

            for variant in product.get("variants") or []:
                size = _SIZE_RE.search(variant.get("title") or "")
                # "Default Title" and other non-size variants
                if not size:
                    continue

                extras: dict[str, Any] = {}
                if size.group(2):
                    extras["wide"] = "true"

                compare_at = variant.get("compare_at_price")
                listings.append(
                    RawListing(
                        source=self.source,
                        url=url,
                        brand=brand,
                        model=product.get("title"),
                        title=product.get("title"),
                        price=variant.get("price"),
                        original_price=compare_at or None,
                        currency=self.currency,
                        region=self.region,
                        gender=_gender_from_product(product),
                        availability="in_stock" if variant.get("available") else "out_of_stock",
                        description=text or None,
                        length_cm=float(size.group(1)),
                        image_url=image_url,
                        specs=dict(specs),
                        extras=extras,
                    )
                )

        return listings
