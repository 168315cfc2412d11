"""Tests for spec reconciliation: precedence, recency, ingest and purge."""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from boardscout.normalize.identity import BoardIdentity
from boardscout.reconcile.claims import Claim
from boardscout.reconcile.engine import ReconciliationEngine
from boardscout.reconcile.precedence import PrecedenceTable

KEY = "burton|custom"
T0 = datetime(2025, 1, 1, 12, 0, 0)


def _claim(source, value, field="flex", observed_at=T0, key=KEY):
    return Claim(key, field, source, value, f"https://example.test/{source}", observed_at)


@pytest.fixture
def engine(store):
    return ReconciliationEngine(store, PrecedenceTable(["manufacturer", "review-site", "retailer", "inferred"]))


def test_higher_tier_wins(engine):
    resolved = engine.reconcile(
        KEY,
        "flex",
        [_claim("retailer:evo", "soft"), _claim("manufacturer:burton", "stiff")],
    )
    assert resolved.value == "stiff"
    assert resolved.source == "manufacturer:burton"
    assert resolved.tier == "manufacturer"
    assert resolved.agreement is False
    assert [(c.losing_source, c.losing_value) for c in resolved.conflicts] == [("retailer:evo", "soft")]


def test_agreeing_sources_have_no_conflicts(engine):
    resolved = engine.reconcile(
        KEY,
        "flex",
        [_claim("retailer:evo", "stiff"), _claim("manufacturer:burton", "stiff")],
    )
    assert resolved.agreement is True
    assert resolved.conflicts == []


def test_most_recent_wins_within_tier(engine):
    older = _claim("retailer:alpha", "soft", observed_at=T0)
    newer = _claim("retailer:zulu", "medium", observed_at=T0 + timedelta(days=1))
    assert engine.reconcile(KEY, "flex", [older, newer]).value == "medium"


def test_tie_breaks_on_source_name(engine):
    claims = [_claim("retailer:zulu", "medium"), _claim("retailer:alpha", "soft")]
    assert engine.reconcile(KEY, "flex", claims).source == "retailer:alpha"
    assert engine.reconcile(KEY, "flex", list(reversed(claims))).source == "retailer:alpha"


def test_unlisted_tier_ranks_last(store):
    engine = ReconciliationEngine(store, PrecedenceTable(["manufacturer", "retailer"]))
    resolved = engine.reconcile(
        KEY,
        "flex",
        [_claim("review-site:good-ride", "stiff"), _claim("retailer:evo", "soft")],
    )
    assert resolved.source == "retailer:evo"


def test_precedence_is_configurable(store):
    engine = ReconciliationEngine(store, PrecedenceTable(["retailer", "manufacturer"]))
    resolved = engine.reconcile(
        KEY,
        "flex",
        [_claim("manufacturer:burton", "stiff"), _claim("retailer:evo", "soft")],
    )
    assert resolved.source == "retailer:evo"


def test_null_claims_never_win(engine):
    resolved = engine.reconcile(
        KEY,
        "flex",
        [_claim("manufacturer:burton", None), _claim("retailer:evo", "soft")],
    )
    assert resolved.value == "soft"
    assert engine.reconcile(KEY, "flex", [_claim("manufacturer:burton", None)]) is None
    assert engine.reconcile(KEY, "flex", []) is None


@pytest.mark.asyncio
async def test_ingest_outcomes(engine, store):
    claims = [_claim("manufacturer:burton", "stiff"), _claim("retailer:evo", "soft")]

    stats = await engine.ingest(claims)
    assert stats.as_dict() == {"inserted": 2, "updated": 0, "skipped": 0}

    stats = await engine.ingest(claims)
    assert stats.as_dict() == {"inserted": 0, "updated": 0, "skipped": 2}

    stats = await engine.ingest([_claim("retailer:evo", "medium"), _claim("manufacturer:burton", "stiff")])
    assert stats.as_dict() == {"inserted": 0, "updated": 1, "skipped": 1}

    stats = await engine.ingest([_claim("retailer:rei", None)])
    assert stats.as_dict() == {"inserted": 0, "updated": 0, "skipped": 1}
    assert await store.get_claim(KEY, "flex", "retailer:rei") is None


@pytest.mark.asyncio
async def test_ingest_projects_resolution_onto_board(engine, store):
    await engine.ingest(
        [
            _claim("manufacturer:burton", "stiff"),
            _claim("retailer:evo", "soft"),
            _claim("manufacturer:burton", "intermediate-expert", field="ability_level"),
            _claim("manufacturer:burton", "599.95", field="msrp_usd"),
            _claim("retailer:evo", "3 kg", field="weight"),
        ]
    )

    board = await store.get_board(KEY)
    assert board is not None
    assert board.brand == "burton"
    assert board.flex == "stiff"
    assert board.ability_level == "intermediate-expert"
    assert board.ability_level_min == "intermediate"
    assert board.ability_level_max == "expert"
    assert board.msrp_usd == Decimal("599.95")
    assert board.extra_attributes == {"weight": "3 kg"}
    assert board.resolved_sources == {
        "ability_level": "manufacturer:burton",
        "flex": "manufacturer:burton",
        "msrp_usd": "manufacturer:burton",
        "weight": "retailer:evo",
    }


@pytest.mark.asyncio
async def test_purge_falls_back_then_clears(engine, store):
    await engine.ingest([_claim("manufacturer:burton", "stiff"), _claim("retailer:evo", "soft")])

    report = await engine.purge_tier("manufacturer")
    assert report.claims_deleted == 1
    assert report.boards_affected == [KEY]
    assert report.fields_cleared == 0

    board = await store.get_board(KEY)
    assert board.flex == "soft"
    assert board.resolved_sources == {"flex": "retailer:evo"}

    report = await engine.purge_tier("retailer")
    assert report.fields_cleared == 1

    board = await store.get_board(KEY)
    assert board.flex is None
    assert board.resolved_sources == {}


@pytest.mark.asyncio
async def test_purge_unknown_tier_is_a_no_op(engine):
    report = await engine.purge_tier("heuristic")
    assert report.claims_deleted == 0
    assert report.boards_affected == []


@pytest.mark.asyncio
async def test_re_reconcile_applies_new_precedence(engine, store):
    await engine.ingest([_claim("manufacturer:burton", "stiff"), _claim("retailer:evo", "soft")])
    assert (await store.get_board(KEY)).flex == "stiff"

    retail_first = ReconciliationEngine(store, PrecedenceTable(["retailer", "manufacturer"]))
    assert await retail_first.re_reconcile() == 1

    board = await store.get_board(KEY)
    assert board.flex == "soft"
    assert board.resolved_sources["flex"] == "retailer:evo"


@pytest.mark.asyncio
async def test_resolution_is_independent_of_ingest_order(store_factory):
    claims = [
        _claim("retailer:alpha", "soft"),
        _claim("retailer:zulu", "medium"),
        _claim("review-site:good-ride", "stiff", observed_at=T0 - timedelta(days=30)),
        _claim("inferred:description", "freestyle", field="category"),
        _claim("retailer:zulu", "park", field="category"),
    ]

    results = []
    for ordering in (claims, list(reversed(claims))):
        store = await store_factory()
        engine = ReconciliationEngine(store, PrecedenceTable(["manufacturer", "review-site", "retailer", "inferred"]))
        await engine.ingest(ordering)
        board = await store.get_board(KEY)
        results.append((board.flex, board.category, board.resolved_sources))

    assert results[0] == results[1]
    assert results[0][0] == "stiff"
    assert results[0][1] == "park"


@pytest.mark.asyncio
async def test_board_locks_are_released(engine):
    await asyncio.gather(
        engine.ingest([_claim("manufacturer:burton", "stiff")]),
        engine.ingest([_claim("retailer:evo", "soft")]),
        engine.ingest([_claim("retailer:rei", "soft", key="gnu|money")]),
    )
    assert engine._locks == {}
    assert engine._lock_users == {}
    assert (await engine.store.get_board(KEY)).flex == "stiff"


@pytest.mark.asyncio
async def test_claim_first_board_keeps_display_names(engine, store):
    identity = BoardIdentity(board_key="gnu|money", brand="GNU", model="Money", gender="unisex")
    await engine.ingest([_claim("manufacturer:gnu", "soft", key="gnu|money")], {"gnu|money": identity})

    board = await store.get_board("gnu|money")
    assert (board.brand, board.model, board.flex) == ("GNU", "Money", "soft")
