"""Tests for spec value normalization."""

from decimal import Decimal

import pytest

from boardscout.normalize.specs import (
    ability_range,
    category_terrain,
    infer_category,
    normalize_ability_level,
    normalize_category,
    normalize_field_name,
    normalize_flex,
    normalize_msrp,
    normalize_profile,
    normalize_shape,
    normalize_spec_value,
    normalize_terrain_score,
    terrain_category,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("6/10", "medium-stiff"),
        ("3", "soft"),
        (8, "stiff"),
        ("Soft", "soft"),
        ("Medium Stiff", "medium-stiff"),
        ("medium-soft", "medium-soft"),
        ("Very Soft", "very soft"),
        ("11/10", None),
        ("", None),
        (None, None),
    ],
)
def test_flex(raw, expected):
    assert normalize_flex(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Flying V", "hybrid_rocker"),
        ("C2", "hybrid_camber"),
        ("Rocker/Camber/Rocker", "hybrid_rocker"),
        ("Camber", "camber"),
        ("Camber with rocker tips", "hybrid_camber"),
        ("hybrid_camber", "hybrid_camber"),
        ("wavy", None),
    ],
)
def test_profile(raw, expected):
    assert normalize_profile(raw) == expected


def test_shape():
    assert normalize_shape("Directional Twin") == "directional_twin"
    assert normalize_shape("Twin") == "true_twin"
    assert normalize_shape("true_twin") == "true_twin"
    assert normalize_shape("Tapered Directional") == "tapered"
    assert normalize_shape("round") is None


def test_category():
    assert normalize_category("All-Mountain") == "all_mountain"
    assert normalize_category("Park & Pipe") == "park"
    assert normalize_category("Powder") == "powder"
    assert normalize_category("racing") is None


def test_infer_category_from_description():
    assert infer_category("A playful freestyle board for butters and tricks") == "freestyle"
    assert infer_category("") is None
    assert infer_category("Graphics by a local artist") is None


def test_ability_level():
    assert normalize_ability_level("Intermediate to Expert") == "intermediate-expert"
    assert normalize_ability_level("Advanced") == "advanced"
    assert normalize_ability_level("Novice") == "beginner"
    assert normalize_ability_level("everyone") is None
    assert ability_range("beginner-intermediate") == ("beginner", "intermediate")


def test_msrp():
    assert normalize_msrp("$599.95") == "599.95"
    assert normalize_msrp(Decimal("600")) == "600.00"
    assert normalize_msrp("0") is None
    assert normalize_msrp("call") is None
    assert normalize_msrp("9" * 30) is None
    assert normalize_msrp("123456789") is None


def test_unrecognized_core_value_is_dropped_but_other_fields_kept():
    assert normalize_spec_value("flex", "gibberish") is None
    assert normalize_spec_value("weight", "  3.2   kg ") == "3.2 kg"
    assert normalize_spec_value("weight", "   ") is None


def test_field_names():
    assert normalize_field_name("Ability Level") == "ability_level"
    assert normalize_field_name("abilityLevel") == "ability_level"
    assert normalize_field_name("msrp") == "msrp_usd"
    assert normalize_field_name("Terrain") == "category"
    assert normalize_field_name("rider-level") == "ability_level"


def test_terrain_scores():
    assert normalize_terrain_score(2) == "2"
    assert normalize_terrain_score("4/5") == "3"
    assert normalize_terrain_score("3/5") == "2"
    assert normalize_terrain_score("8/10") == "3"
    assert normalize_terrain_score("5/10") == "2"
    assert normalize_terrain_score("7") is None
    assert normalize_terrain_score("lots") is None
    assert normalize_spec_value("terrain_park", "1/10") == "1"


def test_category_and_terrain_mapping():
    assert category_terrain("park") == {
        "terrain_piste": "1",
        "terrain_powder": "1",
        "terrain_park": "3",
        "terrain_freeride": "1",
        "terrain_freestyle": "2",
    }
    assert category_terrain(None) == {}
    # Categories map back to themselves; freeride ties with powder
    for category in ("all_mountain", "freestyle", "park", "powder"):
        assert terrain_category(category_terrain(category)) == category
    # Ties keep the first dimension
    assert terrain_category({"terrain_freeride": "3", "terrain_powder": "3"}) == "powder"
    assert terrain_category({}) is None
