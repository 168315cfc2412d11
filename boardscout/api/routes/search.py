"""Pipeline invocation endpoint."""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from boardscout.api.deps import get_task_runner
from boardscout.api.routes.runs import BoardResponse, RunResponse, boards_response
from boardscout.ingest.base import RawListing
from boardscout.pipeline.orchestrator import RunConfig
from boardscout.worker.tasks import PipelineBusyError, TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


class ScrapedBoardRequest(BaseModel):
    """A listing scraped outside the pipeline, fed into a run."""
    source: str = "retailer:manual"
    url: str
    brand: Optional[str] = None
    model: Optional[str] = None
    title: Optional[str] = None
    price: Any = None
    original_price: Any = None
    currency: Optional[str] = None
    region: Optional[str] = None
    condition: Optional[str] = None
    gender: Optional[str] = None
    availability: Optional[str] = None
    stock_count: Any = None
    description: Optional[str] = None
    length_cm: Optional[float] = None
    image_url: Optional[str] = None
    specs: dict[str, Any] = {}


class SearchRequest(BaseModel):
    """Request model for running the pipeline."""
    retailers: Optional[List[str]] = None
    manufacturers: Optional[List[str]] = None
    sites: Optional[List[str]] = None
    skip_listings: bool = False
    skip_manufacturers: bool = False
    skip_enrichment: bool = False
    extra_scraped_boards: List[ScrapedBoardRequest] = []


class RunErrorResponse(BaseModel):
    """One error recorded on a run."""
    source: str
    message: str
    kind: str
    timestamp: datetime


class SearchResponse(BaseModel):
    """Response model for a pipeline run."""
    run: RunResponse
    boards: List[BoardResponse]
    errors: List[RunErrorResponse]
    network_requests: int


@router.post("/search", response_model=SearchResponse)
async def run_search(request: SearchRequest, runner: TaskRunner = Depends(get_task_runner)):
    """Run the pipeline and return the run, its boards and its errors."""
    config = RunConfig(
        retailers=request.retailers,
        manufacturers=request.manufacturers,
        sites=request.sites,
        skip_listings=request.skip_listings,
        skip_manufacturers=request.skip_manufacturers,
        skip_enrichment=request.skip_enrichment,
        extra_scraped_boards=[RawListing(**board.model_dump()) for board in request.extra_scraped_boards],
    )
    try:
        result = await runner.run_pipeline(config, trigger="manual")
    except PipelineBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SearchResponse(
        run=RunResponse.model_validate(result.run),
        boards=boards_response(result.boards),
        errors=[RunErrorResponse(**vars(error)) for error in result.errors],
        network_requests=result.network_requests,
    )
