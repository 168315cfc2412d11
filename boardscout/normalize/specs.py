"""Spec value normalization.

Every source describes flex, camber profile, shape and terrain in its own
vocabulary ("Flying V", "C2", "6/10", "park & pipe"). Claims are stored in one
canonical vocabulary so that agreement between sources can be detected and a
resolved value means the same thing whichever source won.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

MAX_MSRP = Decimal("99999999.99")

FLEX_LABELS = ("very soft", "soft", "medium-soft", "medium", "medium-stiff", "stiff", "very stiff")

# 1-10 rating -> label
_FLEX_BY_RATING = {
    1: "very soft",
    2: "very soft",
    3: "soft",
    4: "medium-soft",
    5: "medium",
    6: "medium-stiff",
    7: "stiff",
    8: "stiff",
    9: "very stiff",
    10: "very stiff",
}

PROFILE_MAP = {
    "camber": "camber",
    "traditional camber": "camber",
    "full camber": "camber",
    "rocker": "rocker",
    "full rocker": "rocker",
    "pure rocker": "rocker",
    "banana": "rocker",
    "catch-free": "rocker",
    "flat": "flat",
    "flat top": "flat",
    "zero camber": "flat",
    "hybrid camber": "hybrid_camber",
    "camrock": "hybrid_camber",
    "cam-rock": "hybrid_camber",
    "directional camber": "hybrid_camber",
    "camber/rocker": "hybrid_camber",
    "camber with rocker": "hybrid_camber",
    "mostly camber": "hybrid_camber",
    "s-camber": "hybrid_camber",
    "hybrid rocker": "hybrid_rocker",
    "rocker/camber": "hybrid_rocker",
    "rocker/camber/rocker": "hybrid_rocker",
    "rocker with camber": "hybrid_rocker",
    "mostly rocker": "hybrid_rocker",
    "gullwing": "hybrid_rocker",
    "directional flat with rocker": "hybrid_rocker",
    "flat with rocker": "hybrid_rocker",
    "flat with camber": "hybrid_camber",
    "flat to rocker": "hybrid_rocker",
    # Burton
    "flying v": "hybrid_rocker",
    "pure pop camber": "camber",
    "purepop camber": "camber",
    "purepop": "camber",
    "directional flat top": "flat",
    # Mervin (Lib Tech, GNU)
    "c2": "hybrid_camber",
    "c2x": "hybrid_camber",
    "c2e": "hybrid_camber",
    "c3": "camber",
    "btx": "hybrid_rocker",
    "b.c.": "hybrid_rocker",
    "c2 btx": "hybrid_camber",
    "c3 btx": "camber",
    # Jones
    "camrock 2.0": "hybrid_camber",
    "directional rocker": "hybrid_rocker",
    # Ride
    "performance rocker": "hybrid_rocker",
    "quad rocker": "hybrid_rocker",
    # CAPiTA
    "resort v1": "hybrid_camber",
    "alpine v1": "hybrid_camber",
    "park v1": "hybrid_rocker",
    # Arbor
    "system camber": "camber",
    "system rocker": "rocker",
    "parabolic rocker": "hybrid_rocker",
    "uprise fender": "hybrid_camber",
    # K2
    "directional baseline": "flat",
    "catch free baseline": "flat",
    "jib baseline": "flat",
    "catch free rocker baseline": "rocker",
    # Rossignol
    "amptek": "hybrid_camber",
    "amptek auto-turn rocker": "hybrid_rocker",
}

SHAPE_MAP = {
    "true twin": "true_twin",
    "twin": "true_twin",
    "perfectly twin": "true_twin",
    "symmetrical": "true_twin",
    "directional twin": "directional_twin",
    "directional-twin": "directional_twin",
    "tapered twin": "directional_twin",
    "slight directional twin": "directional_twin",
    "directional": "directional",
    "fully directional": "directional",
    "tapered": "tapered",
    "tapered directional": "tapered",
    "directional tapered": "tapered",
}

CATEGORY_MAP = {
    "all-mountain": "all_mountain",
    "all mountain": "all_mountain",
    "allmountain": "all_mountain",
    "all_mountain": "all_mountain",
    "mountain": "all_mountain",
    "freestyle": "freestyle",
    "free style": "freestyle",
    "freeride": "freeride",
    "free ride": "freeride",
    "backcountry": "freeride",
    "powder": "powder",
    "deep powder": "powder",
    "park": "park",
    "park & pipe": "park",
    "park/pipe": "park",
    "park / freestyle": "park",
    "jib": "park",
    "park/jib": "park",
}

CATEGORY_KEYWORDS = {
    "all_mountain": ["all-mountain", "all mountain", "versatile", "do-it-all", "everyday", "quiver of one", "one board quiver"],
    "freestyle": ["freestyle", "playful", "butter", "jibbing", "tricks"],
    "freeride": ["freeride", "backcountry", "big mountain", "aggressive", "charging", "steep"],
    "powder": ["powder", "deep snow", "float", "surfing"],
    "park": ["park", "pipe", "jib", "rails", "boxes", "halfpipe", "terrain park"],
}

ABILITY_LEVELS = ("beginner", "intermediate", "advanced", "expert")
ABILITY_ALIASES = {
    "novice": "beginner",
    "entry level": "beginner",
    "entry-level": "beginner",
    "day 1": "beginner",
    "pro level": "expert",
    "pro": "expert",
}

CORE_FIELDS = ("flex", "profile", "shape", "category", "ability_level", "msrp_usd")

TERRAIN_DIMENSIONS = ("piste", "powder", "park", "freeride", "freestyle")
TERRAIN_FIELDS = tuple(f"terrain_{dim}" for dim in TERRAIN_DIMENSIONS)

# Category -> 1-3 score per terrain dimension, in TERRAIN_DIMENSIONS order
CATEGORY_TERRAIN = {
    "all_mountain": (3, 2, 2, 2, 2),
    "freestyle": (2, 1, 2, 1, 3),
    "park": (1, 1, 3, 1, 2),
    "freeride": (2, 3, 1, 3, 1),
    "powder": (1, 3, 1, 2, 1),
}
_CATEGORY_BY_DIMENSION = {
    "piste": "all_mountain",
    "powder": "powder",
    "park": "park",
    "freeride": "freeride",
    "freestyle": "freestyle",
}


def normalize_flex(raw: Any) -> Optional[str]:
    """
    Map a flex rating or description to a flex label.

    ``"6/10"`` -> ``"medium-stiff"``, ``"Soft"`` -> ``"soft"``,
    ``"Medium Stiff"`` -> ``"medium-stiff"``.
    """
    if raw is None:
        return None
    text = str(raw).strip().lower()
    if not text:
        return None

    rating = None
    match = re.search(r"(\d+(?:\.\d+)?)\s*(?:/|out of)\s*10", text)
    if match:
        rating = float(match.group(1))
    elif re.fullmatch(r"\d+(?:\.\d+)?", text):
        rating = float(text)
    if rating is not None:
        if 1 <= rating <= 10:
            return _FLEX_BY_RATING[int(rating + 0.5)]
        return None

    text = re.sub(r"\s+", " ", text.replace("_", " "))
    if "very soft" in text or "extra soft" in text:
        return "very soft"
    if "very stiff" in text or "extra stiff" in text:
        return "very stiff"
    if re.search(r"medium[\s-]soft|soft[\s-]medium|soft to medium|medium to soft", text):
        return "medium-soft"
    if re.search(r"medium[\s-]stiff|stiff[\s-]medium|medium to stiff|stiff to medium", text):
        return "medium-stiff"
    if "soft" in text:
        return "soft"
    if "stiff" in text:
        return "stiff"
    if "medium" in text or "mid" in text:
        return "medium"
    return None


def normalize_profile(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).lower().strip()
    if not text:
        return None
    if text in PROFILE_MAP:
        return PROFILE_MAP[text]
    if text in PROFILE_MAP.values():
        return text

    # Both present: whichever comes first dominates
    if "rocker" in text and "camber" in text:
        return "hybrid_rocker" if text.index("rocker") < text.index("camber") else "hybrid_camber"

    for key in sorted(PROFILE_MAP, key=len, reverse=True):
        if key in text:
            return PROFILE_MAP[key]

    if "camber" in text:
        return "camber"
    if "rocker" in text:
        return "rocker"
    if "flat" in text:
        return "flat"
    return None


def normalize_shape(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).lower().strip()
    if not text:
        return None
    if text in SHAPE_MAP:
        return SHAPE_MAP[text]
    if text in SHAPE_MAP.values():
        return text
    if "twin" in text and "direct" in text:
        return "directional_twin"
    for key in sorted(SHAPE_MAP, key=len, reverse=True):
        if key in text:
            return SHAPE_MAP[key]
    if "taper" in text:
        return "tapered"
    return None


def normalize_category(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).lower().strip()
    if not text:
        return None
    if text in CATEGORY_MAP:
        return CATEGORY_MAP[text]
    for key in sorted(CATEGORY_MAP, key=len, reverse=True):
        if key in text:
            return CATEGORY_MAP[key]
    return None


def infer_category(description: Optional[str]) -> Optional[str]:
    """
    Guess a category from description keywords.

    The category with the most keyword hits wins; ties keep the first in
    ``CATEGORY_KEYWORDS`` order.
    """
    if not description:
        return None
    text = description.lower()
    best, best_count = None, 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        count = sum(1 for kw in keywords if kw in text)
        if count > best_count:
            best, best_count = category, count
    return best


def ability_range(raw: Any) -> tuple[Optional[str], Optional[str]]:
    """Split an ability description into (min, max) levels."""
    if raw is None:
        return None, None
    text = str(raw).lower().strip()
    found = {level for level in ABILITY_LEVELS if level in text}
    for alias, level in ABILITY_ALIASES.items():
        if re.search(rf"\b{re.escape(alias)}\b", text):
            found.add(level)
    if not found:
        return None, None
    indexes = sorted(ABILITY_LEVELS.index(level) for level in found)
    return ABILITY_LEVELS[indexes[0]], ABILITY_LEVELS[indexes[-1]]


def normalize_ability_level(raw: Any) -> Optional[str]:
    """``"Intermediate to Expert"`` -> ``"intermediate-expert"``."""
    low, high = ability_range(raw)
    if low is None:
        return None
    return low if low == high else f"{low}-{high}"


def normalize_msrp(raw: Any) -> Optional[str]:
    """Positive price as a two-decimal string, else None."""
    if raw is None:
        return None
    text = re.sub(r"[^\d.\-]", "", str(raw))
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if value <= 0:
        return None
    try:
        value = value.quantize(Decimal("0.01"))
    except InvalidOperation:
        return None
    if value > MAX_MSRP:
        return None
    return str(value)


def normalize_terrain_score(raw: Any) -> Optional[str]:
    """
    Terrain rating on the 1-3 scale.

    Accepts plain 1-3 scores and "n/5" or "n/10" ratings, which are
    bucketed down (1-2, 3, 4-5 and 1-3, 4-7, 8-10).
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(?:/\s*(\d+))?", text)
    if not match:
        return None
    value = float(match.group(1))
    scale = int(match.group(2)) if match.group(2) else 3
    if value < 1 or value > scale:
        return None
    if scale == 3:
        score = round(value)
    elif scale == 5:
        score = 1 if value <= 2 else 2 if value <= 3 else 3
    elif scale == 10:
        score = 1 if value <= 3 else 2 if value <= 7 else 3
    else:
        return None
    return str(score)


def category_terrain(category: Optional[str]) -> dict[str, str]:
    """Default terrain scores for a canonical category; empty if unknown."""
    scores = CATEGORY_TERRAIN.get(category or "")
    if scores is None:
        return {}
    return {f"terrain_{dim}": str(score) for dim, score in zip(TERRAIN_DIMENSIONS, scores)}


def terrain_category(scores: dict[str, Any]) -> Optional[str]:
    """
    Category implied by terrain scores: the highest dimension wins, ties
    keep the first in ``TERRAIN_DIMENSIONS`` order.
    """
    best, best_score = None, 0
    for dim in TERRAIN_DIMENSIONS:
        value = scores.get(f"terrain_{dim}")
        if value is None:
            continue
        try:
            score = int(value)
        except (TypeError, ValueError):
            continue
        if score > best_score:
            best, best_score = dim, score
    return _CATEGORY_BY_DIMENSION.get(best) if best else None


_NORMALIZERS = {
    "flex": normalize_flex,
    "profile": normalize_profile,
    "shape": normalize_shape,
    "category": normalize_category,
    "ability_level": normalize_ability_level,
    "msrp_usd": normalize_msrp,
    **{name: normalize_terrain_score for name in TERRAIN_FIELDS},
}


def normalize_spec_value(field: str, raw: Any) -> Optional[str]:
    """
    Canonical string for a spec claim value.

    Core fields use their vocabulary and yield None for unrecognized text;
    any other field is kept as trimmed text.
    """
    normalizer = _NORMALIZERS.get(field)
    if normalizer is not None:
        return normalizer(raw)
    if raw is None:
        return None
    text = re.sub(r"\s+", " ", str(raw)).strip()
    return text or None


def normalize_field_name(name: str) -> str:
    """``"Ability Level"`` / ``"abilityLevel"`` -> ``"ability_level"``."""
    name = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", name.strip())
    name = re.sub(r"[\s\-]+", "_", name).lower()
    return {"msrp": "msrp_usd", "rider_level": "ability_level", "terrain": "category"}.get(name, name)
