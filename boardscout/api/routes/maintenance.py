"""Catalog maintenance endpoints."""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from boardscout.api.deps import get_maintenance, get_task_runner, require_admin_api_key
from boardscout.maintenance import MaintenanceService
from boardscout.worker.tasks import PipelineBusyError, TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


class PurgeRequest(BaseModel):
    """Request model for a tier purge."""
    tier: str


class PurgeResponse(BaseModel):
    """Response model for a tier purge."""
    tier: str
    claims_deleted: int
    boards_affected: List[str]
    fields_cleared: int


class ReconcileRequest(BaseModel):
    """Request model for forced re-reconciliation. No keys means every board."""
    board_keys: Optional[List[str]] = None


def _busy(error: PipelineBusyError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(error))


@router.post("/purge", response_model=PurgeResponse, dependencies=[Depends(require_admin_api_key)])
async def purge_tier(
    request: PurgeRequest,
    service: MaintenanceService = Depends(get_maintenance),
    runner: TaskRunner = Depends(get_task_runner),
):
    """Delete all claims from a source tier and re-resolve affected boards."""
    try:
        async with runner.exclusive("tier purge"):
            report = await service.purge_tier(request.tier)
    except PipelineBusyError as e:
        raise _busy(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PurgeResponse(
        tier=report.tier,
        claims_deleted=report.claims_deleted,
        boards_affected=report.boards_affected,
        fields_cleared=report.fields_cleared,
    )


@router.post("/reconcile", dependencies=[Depends(require_admin_api_key)])
async def force_reconcile(
    request: ReconcileRequest,
    service: MaintenanceService = Depends(get_maintenance),
    runner: TaskRunner = Depends(get_task_runner),
):
    """Re-resolve boards from stored claims without scraping."""
    try:
        async with runner.exclusive("re-reconciliation"):
            count = await service.force_reconcile(request.board_keys)
    except PipelineBusyError as e:
        raise _busy(e)
    return {"boards_reconciled": count}


@router.get("/coverage")
async def coverage(service: MaintenanceService = Depends(get_maintenance)) -> dict[str, Any]:
    """Resolved-field coverage and claim counts per tier."""
    return await service.coverage_report()


@router.get("/boards/{board_key}/audit")
async def board_audit(board_key: str, service: MaintenanceService = Depends(get_maintenance)) -> dict[str, Any]:
    """All claims for a board with what precedence would resolve today."""
    audit = await service.board_audit(board_key)
    if audit is None:
        raise HTTPException(status_code=404, detail="Board not found")
    return audit


@router.get("/cache")
async def cache_stats(service: MaintenanceService = Depends(get_maintenance)) -> dict[str, Any]:
    """HTTP response cache statistics."""
    return await service.cache_stats()


@router.delete("/cache", dependencies=[Depends(require_admin_api_key)])
async def clear_cache(
    service: MaintenanceService = Depends(get_maintenance),
    runner: TaskRunner = Depends(get_task_runner),
):
    """Wipe the HTTP response cache; the next run refetches everything."""
    try:
        async with runner.exclusive("cache clear"):
            cleared = await service.clear_cache()
    except PipelineBusyError as e:
        raise _busy(e)
    return {"cleared": cleared}
