"""Run and catalog query endpoints (read-only)."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from boardscout.api.deps import get_store
from boardscout.db.models import Board
from boardscout.db.store import BoardWithListings, CatalogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/runs", tags=["runs"])
boards_router = APIRouter(prefix="/api/boards", tags=["boards"])


# Response models
class RunResponse(BaseModel):
    """Response model for a pipeline run."""
    id: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime]
    sources_queried: str
    board_count: int
    listing_count: int
    error_count: int
    rejected_count: int
    duration_ms: int

    class Config:
        from_attributes = True


class ListingResponse(BaseModel):
    """Response model for one listing."""
    retailer: str
    url: str
    title: Optional[str]
    image_url: Optional[str]
    length_cm: Optional[float]
    price: Decimal
    original_price: Optional[Decimal]
    currency: str
    price_usd: Optional[Decimal] = None
    original_price_usd: Optional[Decimal] = None
    region: str
    discount_percent: Optional[int]
    condition: str
    gender: str
    availability: str
    stock_count: Optional[int]
    scraped_at: datetime

    class Config:
        from_attributes = True


class BoardResponse(BaseModel):
    """Response model for a board and its run listings."""
    board_key: str
    brand: str
    model: str
    gender: str
    year: Optional[int]
    flex: Optional[str]
    profile: Optional[str]
    shape: Optional[str]
    category: Optional[str]
    ability_level: Optional[str]
    ability_level_min: Optional[str]
    ability_level_max: Optional[str]
    msrp_usd: Optional[Decimal]
    resolved_sources: dict[str, str]
    extra_attributes: dict[str, Any]
    listings: List[ListingResponse] = []


class SpecSourceResponse(BaseModel):
    """One claim in a board's provenance view."""
    source: str
    value: str
    source_url: Optional[str]
    observed_at: datetime
    resolved: bool


def board_response(board: Board, listings: Optional[list] = None) -> BoardResponse:
    return BoardResponse(
        board_key=board.board_key,
        brand=board.brand,
        model=board.model,
        gender=board.gender,
        year=board.year,
        flex=board.flex,
        profile=board.profile,
        shape=board.shape,
        category=board.category,
        ability_level=board.ability_level,
        ability_level_min=board.ability_level_min,
        ability_level_max=board.ability_level_max,
        msrp_usd=board.msrp_usd,
        resolved_sources=board.resolved_sources or {},
        extra_attributes=board.extra_attributes or {},
        listings=[ListingResponse.model_validate(listing) for listing in listings or []],
    )


def boards_response(entries: List[BoardWithListings]) -> List[BoardResponse]:
    return [board_response(entry.board, entry.listings) for entry in entries]


@router.get("", response_model=List[RunResponse])
async def list_runs(limit: int = 50, store: CatalogStore = Depends(get_store)):
    """List runs, newest first."""
    return await store.get_all_runs(limit=limit)


@router.get("/latest", response_model=RunResponse)
async def get_latest_run(store: CatalogStore = Depends(get_store)):
    """Get the most recent run."""
    run = await store.get_latest_run()
    if not run:
        raise HTTPException(status_code=404, detail="No runs yet")
    return run


@router.get("/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, store: CatalogStore = Depends(get_store)):
    """Get a specific run."""
    run = await store.get_run_by_id(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.get("/{run_id}/boards", response_model=List[BoardResponse])
async def get_run_boards(run_id: str, store: CatalogStore = Depends(get_store)):
    """Boards with the listings recorded in a run."""
    run = await store.get_run_by_id(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return boards_response(await store.get_boards_with_listings(run_id))


@boards_router.get("/{board_key}/sources", response_model=dict[str, List[SpecSourceResponse]])
async def get_spec_sources(board_key: str, store: CatalogStore = Depends(get_store)):
    """Every claim for a board, grouped by field, with the winner flagged."""
    sources = await store.get_spec_sources(board_key)
    if not sources and await store.get_board(board_key) is None:
        raise HTTPException(status_code=404, detail="Board not found")
    return sources
