"""FastAPI dependencies."""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boardscout.config import settings
from boardscout.db.session import AsyncSessionLocal
from boardscout.db.store import CatalogStore, SqlCatalogStore
from boardscout.ingest.http_cache import HTTPCache
from boardscout.maintenance import MaintenanceService
from boardscout.reconcile.engine import ReconciliationEngine
from boardscout.worker.tasks import TaskRunner, task_runner


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for the session factory (overridden in tests)."""
    return AsyncSessionLocal


async def get_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CatalogStore:
    return SqlCatalogStore(session_factory)


async def get_cache(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> HTTPCache:
    return HTTPCache(session_factory)


async def get_task_runner() -> TaskRunner:
    return task_runner


async def get_engine(runner: TaskRunner = Depends(get_task_runner)) -> ReconciliationEngine:
    """The runner's engine, so maintenance and runs share per-board locks."""
    return runner.engine


async def get_maintenance(
    store: CatalogStore = Depends(get_store),
    cache: HTTPCache = Depends(get_cache),
    engine: ReconciliationEngine = Depends(get_engine),
) -> MaintenanceService:
    return MaintenanceService(store, engine=engine, cache=cache)


async def require_admin_api_key(
    x_admin_api_key: str = Header(..., alias="X-Admin-API-Key")
) -> None:
    """
    Dependency to require admin API key for protected endpoints.

    Args:
        x_admin_api_key: Admin API key from X-Admin-API-Key header

    Raises:
        HTTPException: 422 if header missing, 503 if no key configured, 403 if invalid
    """
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured"
        )

    if x_admin_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key"
        )
