"""Tests for the SQL catalog store."""

from datetime import datetime
from decimal import Decimal

import pytest

from boardscout.normalize.identity import resolve
from boardscout.normalize.processor import NormalizedListing
from boardscout.reconcile.claims import Claim
from boardscout.reconcile.engine import ReconciliationEngine
from boardscout.reconcile.precedence import PrecedenceTable


def _normalized(board_key, retailer="evo", url="https://evo.test/custom", length_cm=158.0, price="499.95"):
    return NormalizedListing(
        board_key=board_key,
        retailer=retailer,
        url=url,
        price=Decimal(price),
        original_price=None,
        currency="USD",
        region="US",
        discount_percent=None,
        condition="new",
        gender="unisex",
        availability="in_stock",
        stock_count=None,
        scraped_at=datetime(2025, 1, 1),
        length_cm=length_cm,
    )


@pytest.mark.asyncio
async def test_run_lifecycle(store):
    run = await store.create_run("run-1", ["retailer:evo", "manufacturer:burton"], {"skip_listings": False})
    assert run.status == "pending"
    assert run.sources_queried == "retailer:evo,manufacturer:burton"

    await store.update_run("run-1", status="running")
    run = await store.update_run("run-1", status="complete", board_count=3)
    assert run.status == "complete"
    assert run.board_count == 3

    assert (await store.get_latest_run()).id == "run-1"
    assert (await store.get_run_by_id("run-1")).config_json == {"skip_listings": False}
    assert await store.get_run_by_id("missing") is None
    assert await store.update_run("missing", status="complete") is None
    assert [r.id for r in await store.get_all_runs()] == ["run-1"]


@pytest.mark.asyncio
async def test_upsert_board_fills_missing_fields_only(store):
    identity = resolve("Burton", "Custom")
    await store.upsert_board(identity)
    await store.upsert_board(identity, year=2025, description="Since 1996")
    await store.upsert_board(identity, year=2024, description="Changed")

    board = await store.get_board(identity.board_key)
    assert board.brand == "Burton"
    assert board.model == "Custom"
    assert board.year == 2025
    assert board.description == "Since 1996"


@pytest.mark.asyncio
async def test_listings_are_deduplicated_and_grouped(store):
    custom = resolve("Burton", "Custom")
    money = resolve("GNU", "Money")
    await store.upsert_board(custom)
    await store.upsert_board(money)
    await store.create_run("run-1", [])

    inserted = await store.insert_listings(
        "run-1",
        [
            _normalized(custom.board_key, length_cm=158.0),
            _normalized(custom.board_key, length_cm=158.0, price="1.00"),
            _normalized(custom.board_key, length_cm=162.0),
            _normalized(money.board_key, retailer="rei", url="https://rei.test/money"),
        ],
    )
    assert inserted == 3

    entries = await store.get_boards_with_listings("run-1")
    assert [e.board.board_key for e in entries] == ["burton|custom", "gnu|money"]
    assert [listing.length_cm for listing in entries[0].listings] == [158.0, 162.0]
    assert entries[0].listings[0].price == Decimal("499.95")

    assert await store.get_boards_with_listings("other-run") == []


@pytest.mark.asyncio
async def test_spec_sources_flag_the_winner(store):
    engine = ReconciliationEngine(store, PrecedenceTable(["manufacturer", "retailer"]))
    await engine.ingest(
        [
            Claim("burton|custom", "flex", "manufacturer:burton", "stiff"),
            Claim("burton|custom", "flex", "retailer:evo", "soft"),
        ]
    )

    sources = await store.get_spec_sources("burton|custom")
    flags = {entry["source"]: entry["resolved"] for entry in sources["flex"]}
    assert flags == {"manufacturer:burton": True, "retailer:evo": False}
    assert await store.get_spec_sources("nobody|nothing") == {}


@pytest.mark.asyncio
async def test_coverage(store):
    engine = ReconciliationEngine(store, PrecedenceTable(["manufacturer", "retailer"]))
    await store.upsert_board(resolve("GNU", "Money"))
    await engine.ingest(
        [
            Claim("burton|custom", "flex", "manufacturer:burton", "stiff"),
            Claim("burton|custom", "flex", "retailer:evo", "soft"),
            Claim("burton|custom", "shape", "retailer:evo", "true_twin"),
        ]
    )

    report = await store.coverage()
    assert report["total_boards"] == 2
    assert report["resolved_fields"]["flex"] == 1
    assert report["resolved_fields"]["shape"] == 1
    assert report["resolved_fields"]["profile"] == 0
    assert report["claims_by_tier"] == {"manufacturer": 1, "retailer": 2}
    assert report["claims_by_source"] == {"manufacturer:burton": 1, "retailer:evo": 2}
    assert report["missing"]["flex"] == ["gnu|money"]
    assert await store.claimed_board_keys() == ["burton|custom", "gnu|money"]


@pytest.mark.asyncio
async def test_category_falls_back_to_terrain_scores(store):
    engine = ReconciliationEngine(store, PrecedenceTable(["manufacturer", "retailer"]))
    await engine.ingest(
        [
            Claim("jones|hovercraft", "terrain_powder", "manufacturer:jones", "3"),
            Claim("jones|hovercraft", "terrain_piste", "manufacturer:jones", "2"),
        ]
    )

    board = await store.get_board("jones|hovercraft")
    assert board.category == "powder"
    assert board.resolved_sources["category"] == "derived:terrain"
    assert board.extra_attributes == {"terrain_powder": "3", "terrain_piste": "2"}

    # A claimed category replaces the derived one
    await engine.ingest([Claim("jones|hovercraft", "category", "retailer:evo", "freeride")])
    board = await store.get_board("jones|hovercraft")
    assert board.category == "freeride"
    assert board.resolved_sources["category"] == "retailer:evo"
