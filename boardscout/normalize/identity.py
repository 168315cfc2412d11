"""Board identity resolution.

Turns raw brand/model/gender signals from any source into a stable board key
``brand|model[|womens|kids]``. The same physical board scraped from a brand
store, a shop and a review site must land on the same key, so the model text
is stripped of everything sources decorate it with: sizes, years, binding
packages, retail tags, gender words and repeated brand names.
Brand families then apply their own rules: Burton profile suffixes, Mervin
contour codes and rider names on signature models.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from boardscout.errors import IdentityError

logger = logging.getLogger(__name__)

UNISEX = "unisex"
WOMENS = "womens"
KIDS = "kids"
SEGMENTS = (WOMENS, KIDS)

# Variant spellings -> canonical display name
BRAND_ALIASES = {
    "yes": "Yes.",
    "yes.": "Yes.",
    "dinosaurs": "Dinosaurs Will Die",
    "dwd": "Dinosaurs Will Die",
    "dinosaurs will die": "Dinosaurs Will Die",
    "lib": "Lib Tech",
    "libtech": "Lib Tech",
    "lib tech": "Lib Tech",
    "lib technologies": "Lib Tech",
    "capita": "CAPiTA",
    "capita snowboarding": "CAPiTA",
    "gnu": "GNU",
    "never summer": "Never Summer",
    "united shapes": "United Shapes",
    "sims": "Sims",
    "burton": "Burton",
    "jones": "Jones",
    "ride": "Ride",
    "k2": "K2",
    "arbor": "Arbor",
    "salomon": "Salomon",
    "rossignol": "Rossignol",
    "nitro": "Nitro",
    "season": "Season",
    "bataleon": "Bataleon",
    "rome": "Rome",
    "gentemstick": "Gentemstick",
    "aesmo": "Aesmo",
}

MODEL_ALIASES = {
    "mega merc": "mega mercury",
    "hel yes": "hell yes",
    "dreamweaver": "dream weaver",
    "paradice": "paradise",
}

# Rider names that decorate signature models, per canonical brand
RIDER_NAMES = {
    "GNU": ("Forest Bailey", "Max Warbington", "Cummins'"),
    "Lib Tech": ("T. Rice", "Travis Rice"),
    "CAPiTA": ("Arthur Longo", "Jess Kimura"),
    "Nitro": ("Hailey Langland", "Marcus Kleveland"),
    "Jones": ("Harry Kearney", "Ruiki Masuda"),
    "Arbor": ("Bryan Iguchi", "Erik Leon", "Jared Elston", "Pat Moore", "Mike Liddle", "Danny Kass", "DK"),
    "Gentemstick": ("Alex Yoder",),
    "Aesmo": ("Fernando Elvira",),
}


@dataclass
class ModelStrategy:
    """Brand-family model rules, applied after the shared cleanup."""

    name: str
    # Trailing profile words, moved out of the model into the profile variant
    profile_suffix: Optional[re.Pattern] = None
    # Trailing construction codes, dropped
    contour_suffix: Optional[re.Pattern] = None
    strip_signature: bool = True
    # Key-level aliases (lowercase model -> lowercase model)
    aliases: dict = field(default_factory=dict)
    prefix_aliases: tuple = ()


BURTON_STRATEGY = ModelStrategy(
    name="burton",
    profile_suffix=re.compile(r"\s+(purepop camber|flying v|flat top|purepop|camber)$", re.I),
    strip_signature=False,
    aliases={
        "fish 3d directional": "3d fish directional",
        "fish 3d": "3d fish directional",
        "3d family tree channel surfer": "family tree 3d channel surfer",
    },
)

MERVIN_STRATEGY = ModelStrategy(
    name="mervin",
    contour_suffix=re.compile(r"\s+(?:c3 btx|c2x|c2e|c2|c3|btx)$", re.I),
    aliases={"son of a birdman": "son of birdman"},
)

DEFAULT_STRATEGY = ModelStrategy(
    name="default",
    aliases={"x konvoi surfer": "konvoi x nitro surfer"},
    prefix_aliases=(("sb ", "spring break "), ("darkhorse ", "dark horse ")),
)

STRATEGIES = {
    "Burton": BURTON_STRATEGY,
    "GNU": MERVIN_STRATEGY,
    "Lib Tech": MERVIN_STRATEGY,
}


def strategy_for(brand: str) -> ModelStrategy:
    """Model rules for a canonical brand."""
    return STRATEGIES.get(brand, DEFAULT_STRATEGY)

_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff\u00ad]")
_APOS = "['’]"

_WOMENS_RE = re.compile(rf"\b(?:women{_APOS}?s?|wmns|ladies|lady{_APOS}?s?)(?=\b|\W|$)", re.I)
_KIDS_RE = re.compile(
    rf"\b(?:kids?{_APOS}?|youth|junior|boys?{_APOS}?s?|girls?{_APOS}?s?|toddler)(?=\b|\W|$)",
    re.I,
)
_MENS_RE = re.compile(rf"\b(?:men{_APOS}?s?|mens)(?=\b|\W|$)", re.I)

# Model noise, applied in order
_MODEL_NOISE = [
    (re.compile(r"\s*\|\s*"), " "),
    # Binding packages and combos
    (re.compile(r"\s*\+\s.*$"), ""),
    (re.compile(r"\s+w/\s?.*$", re.I), ""),
    (re.compile(r"\s+&\s+bindings?\b.*$", re.I), ""),
    # Retail tags
    (re.compile(r"\s*\((?:closeout|blem|blemished|sale|used)\)", re.I), ""),
    (re.compile(r"\s*-\s*(?:closeout|blem|blemished|sale|used)\b", re.I), ""),
    (re.compile(r"\bsnowboards?\b", re.I), ""),
    # Years: "2024/2025", "2025", season suffixes
    (re.compile(r"\s*-?\s*\b20[1-3]\d\s*/\s*(?:20)?[1-3]\d\b"), ""),
    (re.compile(r"\s*-?\s*\b20[1-3]\d\b"), ""),
    (re.compile(r"\s*-?\s*\d{4}\s+early\s+release\b", re.I), ""),
    # Sizes: "156", "159W", "156 cm"
    (re.compile(r"\s+\b(?:1[2-9]\d|2[0-2]\d)(?:\.\d)?\s*(?:cm|w|uw|mw)?\b", re.I), ""),
    # Gender words
    (re.compile(rf"\b(?:wo)?men{_APOS}?s?(?=\s|$|\W)", re.I), ""),
    (re.compile(rf"\b(?:kids{_APOS}|youth|boys{_APOS}|girls{_APOS}|boy{_APOS}s|girl{_APOS}s)(?=\s|$|\W)", re.I), ""),
    (re.compile(r"\bpackage\b", re.I), ""),
]


@dataclass(frozen=True)
class BoardIdentity:
    """Resolved identity: the key plus display-cased brand/model."""

    board_key: str
    brand: str
    model: str
    gender: str
    # Profile named in the model text ("Custom Camber" -> "camber")
    profile_variant: Optional[str] = None


def canonical_brand(raw: Optional[str]) -> str:
    """
    Canonical display form of a brand.

    Strips zero-width characters and "Snowboard(s)/Snowboarding/Snowboard Co."
    decorations, then resolves known aliases.
    """
    if not raw:
        return ""
    cleaned = _ZERO_WIDTH.sub("", raw)
    cleaned = re.sub(r"\s*snowboard\s*co\.?\s*", " ", cleaned, flags=re.I)
    cleaned = re.sub(r"\s*snowboarding\b", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\s*snowboards?\b", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return BRAND_ALIASES.get(cleaned.lower(), cleaned)


def _strip_brand_prefix(model: str, brand: str) -> str:
    lowered = model.lower()
    for prefix in {brand.lower(), brand.lower().rstrip(".")}:
        if prefix and lowered.startswith(prefix + " "):
            return model[len(prefix):].lstrip()
    return model


def _strip_rider_names(model: str, riders: tuple) -> str:
    for rider in riders:
        name = re.escape(rider)
        model = re.sub(rf"\s+by\s+{name}(?=\s|$)", "", model, flags=re.I)
        model = re.sub(rf"^{name}\s+", "", model, flags=re.I)
        model = re.sub(rf"\s+{name}$", "", model, flags=re.I)
    return model


def _apply_strategy(model: str, brand: str) -> tuple[str, Optional[str]]:
    """Brand-family cleanup; returns the model and any profile variant split off it."""
    strategy = strategy_for(brand)
    variant = None

    if brand == "Lib Tech":
        model = re.sub(r"^tech\s+", "", model, flags=re.I)
    if strategy.profile_suffix is not None:
        match = strategy.profile_suffix.search(model)
        if match:
            variant = match.group(1).lower()
            model = model[: match.start()]
    if strategy.contour_suffix is not None:
        model = strategy.contour_suffix.sub("", model)
    if strategy.strip_signature:
        model = re.sub(r"^(?:signature series|ltd)\s+", "", model, flags=re.I)
    model = _strip_rider_names(model, RIDER_NAMES.get(brand, ()))
    if brand == "GNU":
        model = re.sub(r"^asym\s+|\s+asym$", "", model, flags=re.I)
    return model.strip(), variant


def _clean_model(raw: Optional[str], brand: str) -> tuple[str, Optional[str]]:
    if not raw:
        return "", None
    model = _ZERO_WIDTH.sub("", raw)
    model = re.sub(r"\s+", " ", model).strip()
    model = _strip_brand_prefix(model, brand)

    for pattern, repl in _MODEL_NOISE:
        model = pattern.sub(repl, model)
    model = re.sub(r"\s+", " ", model).strip()

    # Brand sometimes repeats after a gender or year prefix was removed
    model = _strip_brand_prefix(model, brand)
    if brand == "Dinosaurs Will Die":
        model = re.sub(r"^(?:will die|dinosaurs)\s+", "", model, flags=re.I)

    model = model.replace("T.Rice", "T. Rice")
    model, variant = _apply_strategy(model, brand)
    model = re.sub(r"^the\s+", "", model, flags=re.I)
    # Acronym periods (D.O.A. -> DOA), keeping version numbers and "T. Rice"
    model = re.sub(r"\.(?=[a-zA-Z])", "", model)
    model = re.sub(r"(?<=[a-zA-Z]{2})\.(?=\s|$)", "", model)
    # Dash runs, stray dashes and trailing slashes
    model = re.sub(r"-+", " ", model)
    model = re.sub(r"/+$", "", model)
    model = re.sub(r"^\s*[-/]\s*|\s*[-/]\s*$", "", model)
    model = re.sub(r"\s{2,}", " ", model).strip()
    return model, variant


def clean_model(raw: Optional[str], brand: str = "") -> str:
    """
    Strip source decorations from a model name, keeping its display case.

    ``clean_model("Burton Custom Camber Snowboard 2025 - 158W", "Burton")``
    gives ``"Custom"``; the camber profile is split off by Burton's rules.
    """
    return _clean_model(raw, brand)[0]


def normalize_gender_value(value: Optional[str]) -> Optional[str]:
    """
    Map an explicit gender/category field to a segment.

    Returns:
        "womens", "kids" or "unisex"; None if the value says nothing
    """
    if not value:
        return None
    text = value.strip()
    if text.lower() in (UNISEX, WOMENS, KIDS):
        return text.lower()
    if _WOMENS_RE.search(text):
        return WOMENS
    if _KIDS_RE.search(text):
        return KIDS
    if _MENS_RE.search(text) or re.search(r"\bunisex\b", text, re.I):
        return UNISEX
    return None


def infer_gender(*texts: Optional[str]) -> Optional[str]:
    """Free-text segment inference over titles, URLs and descriptions."""
    for text in texts:
        if not text:
            continue
        if _WOMENS_RE.search(text):
            return WOMENS
        if _KIDS_RE.search(text):
            return KIDS
    return None


def gender_signal(explicit: Optional[str] = None, *texts: Optional[str]) -> str:
    """Explicit field first, then free-text inference, then unisex."""
    return normalize_gender_value(explicit) or infer_gender(*texts) or UNISEX


def infer_year(model: Optional[str]) -> Optional[int]:
    """Model year embedded in a title ("2025", "24/25"), if any."""
    if not model:
        return None
    match = re.search(r"\b(20[1-3]\d)\b", model)
    if match:
        return int(match.group(1))
    match = re.search(r"\b(?:[12]\d)/([12]\d)\b", model)
    if match:
        return 2000 + int(match.group(1))
    return None


def make_board_key(brand: str, model: str, gender: str = UNISEX) -> str:
    """Join already-canonical parts into a board key."""
    key_model = model.lower()
    if gender == KIDS:
        key_model = re.sub(r"^kids\s+", "", key_model)
    strategy = strategy_for(brand)
    for prefix, replacement in strategy.prefix_aliases:
        if key_model.startswith(prefix):
            key_model = replacement + key_model[len(prefix):]
    key_model = MODEL_ALIASES.get(key_model, key_model)
    key_model = strategy.aliases.get(key_model, key_model)
    base = f"{brand.lower()}|{key_model}"
    if gender in SEGMENTS:
        return f"{base}|{gender}"
    return base


def resolve(
    brand: Optional[str],
    model: Optional[str],
    gender: Optional[str] = None,
    url: Optional[str] = None,
) -> BoardIdentity:
    """
    Resolve raw text to a board identity.

    Args:
        brand: Raw brand text
        model: Raw model text (may carry size, year, gender markers)
        gender: Explicit gender/category field; wins over inference
        url: Source URL, used for gender inference

    Returns:
        BoardIdentity

    Raises:
        IdentityError: If brand or model is empty after normalization
    """
    canonical = canonical_brand(brand)
    if not canonical:
        raise IdentityError(f"Empty brand (model={model!r})")

    cleaned, variant = _clean_model(model, canonical)
    if not cleaned:
        raise IdentityError(f"Empty model for brand {canonical!r} (raw={model!r})")

    segment = gender_signal(gender, model, url)
    if segment == KIDS:
        cleaned = re.sub(r"^kids\s+", "", cleaned, flags=re.I) or cleaned

    return BoardIdentity(
        board_key=make_board_key(canonical, cleaned, segment),
        brand=canonical,
        model=cleaned,
        gender=segment,
        profile_variant=variant,
    )


def resolve_key(
    brand: Optional[str],
    model: Optional[str],
    gender: Optional[str] = None,
    url: Optional[str] = None,
) -> str:
    """Board key only; see ``resolve``."""
    return resolve(brand, model, gender, url).board_key


def gender_from_key(board_key: str) -> str:
    last = board_key.rsplit("|", 1)[-1]
    return last if last in SEGMENTS else UNISEX
