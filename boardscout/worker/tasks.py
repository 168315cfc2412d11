"""Pipeline entrypoint shared by the scheduler, the API and the CLI."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from boardscout import metrics
from boardscout.db.session import AsyncSessionLocal
from boardscout.db.store import SqlCatalogStore
from boardscout.pipeline.orchestrator import PipelineResult, RunConfig, run_search_pipeline
from boardscout.reconcile.engine import ReconciliationEngine

logger = logging.getLogger(__name__)

PipelineFn = Callable[[RunConfig], Awaitable[PipelineResult]]


class PipelineBusyError(RuntimeError):
    """Raised when a run is requested while another one is in progress."""

    pass


class TaskRunner:
    """
    Runs the pipeline one run at a time.

    Runs write the same boards and cache rows, so an overlapping request is
    refused (manual) or skipped (scheduled) rather than queued. Maintenance
    writes take the same lock through ``exclusive``.

    Args:
        pipeline: Run function; defaults to ``run_search_pipeline`` with
            ``engine``
        engine: Reconciliation engine shared by runs and maintenance
    """

    def __init__(self, pipeline: Optional[PipelineFn] = None, engine: Optional[ReconciliationEngine] = None):
        self.engine = engine or ReconciliationEngine(SqlCatalogStore(AsyncSessionLocal))
        self._pipeline = pipeline or self._default_pipeline
        self._lock = asyncio.Lock()
        self.last_result: Optional[PipelineResult] = None

    async def _default_pipeline(self, config: RunConfig) -> PipelineResult:
        return await run_search_pipeline(config, engine=self.engine)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def exclusive(self, operation: str) -> AsyncIterator[None]:
        """
        Hold the run lock for a maintenance operation.

        Raises:
            PipelineBusyError: If a run or another operation holds the lock
        """
        if self._lock.locked():
            raise PipelineBusyError(f"A pipeline run is in progress; {operation} refused")
        async with self._lock:
            logger.info(f"Running {operation}")
            yield

    async def run_pipeline(self, config: Optional[RunConfig] = None, trigger: str = "manual") -> PipelineResult:
        """
        Run the pipeline now.

        Raises:
            PipelineBusyError: If a run is already in progress
        """
        if self._lock.locked():
            raise PipelineBusyError("A pipeline run is already in progress")

        async with self._lock:
            logger.info(f"Starting pipeline run (trigger: {trigger})")
            try:
                result = await self._pipeline(config or RunConfig())
            except Exception:
                metrics.record_scheduler_run(trigger, success=False)
                metrics.pipeline_runs_total.labels(status="failed").inc()
                logger.exception(f"Pipeline run failed (trigger: {trigger})")
                raise
            metrics.record_scheduler_run(trigger, success=True)
            self.last_result = result
            return result

    async def scheduled_run(self) -> None:
        """Scheduler job: full run, skipped when one is already going."""
        try:
            await self.run_pipeline(RunConfig(), trigger="scheduled")
        except PipelineBusyError:
            logger.info("Pipeline already running; skipping scheduled run")


task_runner = TaskRunner()
