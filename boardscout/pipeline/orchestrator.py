"""Run orchestrator: adapters in, one run snapshot and reconciled boards out."""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from boardscout import metrics
from boardscout.config import settings
from boardscout.db.models import SearchRun, utcnow
from boardscout.db.store import BoardWithListings, CatalogStore
from boardscout.errors import CatalogError, IdentityError, ParseError, ValidationError
from boardscout.ingest.base import RawListing, RawSpec, SearchOptions, SourceAdapter, SourceType, SpecTarget
from boardscout.ingest.fetcher import PageFetcher
from boardscout.ingest.http_client import FetchError
from boardscout.ingest.registry import AdapterRegistry, default_registry
from boardscout.logging_config import get_logger
from boardscout.normalize.identity import BoardIdentity
from boardscout.normalize.processor import (
    ListingNormalizer,
    listing_claims,
    resolve_spec_identity,
    spec_claims,
    year_of,
)
from boardscout.reconcile.claims import Claim
from boardscout.reconcile.engine import IngestStats, ReconciliationEngine

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """
    Options for one pipeline run.

    ``retailers``/``manufacturers``: None selects all of that type, [] none,
    a list that subset. ``sites`` (non-empty) selects exactly those sources
    and overrides both.
    """

    retailers: Optional[list[str]] = None
    manufacturers: Optional[list[str]] = None
    sites: Optional[list[str]] = None
    skip_listings: bool = False
    skip_manufacturers: bool = False
    skip_enrichment: bool = False
    extra_scraped_boards: list[RawListing] = field(default_factory=list)
    search: SearchOptions = field(default_factory=SearchOptions)

    def to_json(self) -> dict:
        return {
            "retailers": self.retailers,
            "manufacturers": self.manufacturers,
            "sites": self.sites,
            "skip_listings": self.skip_listings,
            "skip_manufacturers": self.skip_manufacturers,
            "skip_enrichment": self.skip_enrichment,
            "extra_scraped_boards": len(self.extra_scraped_boards),
            "search": asdict(self.search),
        }


@dataclass
class RunError:
    """A source-level or record-level failure recorded on a run."""

    source: str
    message: str
    kind: str  # fetch, parse, timeout, identity, validation
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class PipelineResult:
    """Result of a pipeline run. Errors are normal; the run is still complete."""

    run: SearchRun
    boards: list[BoardWithListings]
    errors: list[RunError]
    claims: IngestStats = field(default_factory=IngestStats)
    network_requests: int = 0


@dataclass
class _RunState:
    run_id: str
    errors: list[RunError] = field(default_factory=list)
    rejected: int = 0
    listing_count: int = 0
    claims: IngestStats = field(default_factory=IngestStats)
    seen: dict[str, SpecTarget] = field(default_factory=dict)

    def record_error(self, source: str, message: str, kind: str) -> None:
        self.errors.append(RunError(source=source, message=message, kind=kind))
        metrics.record_adapter_error(source, kind)


class RunOrchestrator:
    """
    Coordinates adapters for one run.

    Adapters of a phase run in fixed-size batches; each call is bounded by
    ``adapter_timeout_seconds`` and its failure is recorded without touching
    the others. Records are then normalized and stored sequentially.
    """

    def __init__(
        self,
        store: CatalogStore,
        pages: PageFetcher,
        registry: Optional[AdapterRegistry] = None,
        engine: Optional[ReconciliationEngine] = None,
        normalizer: Optional[ListingNormalizer] = None,
        batch_size: Optional[int] = None,
        adapter_timeout: Optional[float] = None,
    ):
        self.store = store
        self.pages = pages
        self.registry = registry or default_registry
        self.engine = engine or ReconciliationEngine(store)
        self.normalizer = normalizer or ListingNormalizer()
        self.batch_size = max(1, batch_size or settings.pipeline_batch_size)
        self.adapter_timeout = adapter_timeout or settings.adapter_timeout_seconds

    # ------------------------------------------------------------- adapters

    async def _call_adapter(
        self,
        adapter: SourceAdapter,
        call: Callable[[SourceAdapter], Awaitable[list]],
    ) -> list:
        return await asyncio.wait_for(call(adapter), timeout=self.adapter_timeout)

    async def _run_phase(
        self,
        phase: str,
        adapters: list[SourceAdapter],
        call: Callable[[SourceAdapter], Awaitable[list]],
        state: _RunState,
    ) -> list[tuple[SourceAdapter, list]]:
        """
        Run one phase over its adapters in batches.

        Returns:
            (adapter, records) for every adapter that succeeded

        Raises:
            SQLAlchemyError: Storage failures are not isolated
        """
        results: list[tuple[SourceAdapter, list]] = []
        for i in range(0, len(adapters), self.batch_size):
            batch = adapters[i:i + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._call_adapter(adapter, call) for adapter in batch),
                return_exceptions=True,
            )
            for adapter, outcome in zip(batch, outcomes):
                if isinstance(outcome, SQLAlchemyError):
                    raise outcome
                if isinstance(outcome, asyncio.TimeoutError):
                    message = f"{phase} timed out after {self.adapter_timeout:.0f}s"
                    state.record_error(adapter.source, message, "timeout")
                    logger.warning(f"{adapter.source}: {message}")
                elif isinstance(outcome, FetchError):
                    state.record_error(adapter.source, str(outcome), "fetch")
                    logger.warning(f"{adapter.source}: {phase} fetch failed: {outcome}")
                elif isinstance(outcome, ParseError):
                    state.record_error(adapter.source, str(outcome), "parse")
                    logger.warning(f"{adapter.source}: {phase} parse failed: {outcome}")
                elif isinstance(outcome, Exception):
                    state.record_error(adapter.source, f"{type(outcome).__name__}: {outcome}", "fetch")
                    logger.error(f"{adapter.source}: {phase} failed: {outcome!r}")
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    records = list(outcome or [])
                    results.append((adapter, records))
                    logger.info(f"{adapter.source}: {len(records)} records from {phase}")
        return results

    # -------------------------------------------------------------- records

    def _reject(self, state: _RunState, source: str, error: Exception, kind: str) -> None:
        state.rejected += 1
        state.record_error(source, str(error), kind)
        metrics.record_rejected(source, kind)
        logger.debug(f"{source}: rejected record: {error}")

    async def _process_listings(
        self,
        state: _RunState,
        batches: list[tuple[Optional[SourceAdapter], list[RawListing]]],
    ) -> None:
        normalized = []
        claims: list[Claim] = []
        identities: dict[str, BoardIdentity] = {}
        for adapter, records in batches:
            for raw in records:
                metrics.raw_records_total.labels(source=raw.source, record_type="listing").inc()
                try:
                    identity = self.normalizer.resolve_identity(raw)
                    listing = self.normalizer.normalize(
                        raw,
                        currency=adapter.currency if adapter else None,
                        region=adapter.region if adapter else None,
                        identity=identity,
                    )
                    record_claims = listing_claims(raw, identity.board_key, identity.profile_variant)
                except IdentityError as e:
                    self._reject(state, raw.source, e, "identity")
                    continue
                except CatalogError as e:
                    self._reject(state, raw.source, ValidationError(f"{raw.url}: {e}"), "validation")
                    continue

                await self.store.upsert_board(identity, year=year_of(raw))
                state.seen.setdefault(identity.board_key, SpecTarget(identity.brand, identity.model, identity.board_key))
                identities.setdefault(identity.board_key, identity)
                normalized.append(listing)
                claims.extend(record_claims)

        state.listing_count += await self.store.insert_listings(state.run_id, normalized)
        state.claims.add(await self.engine.ingest(claims, identities))

    async def _process_specs(self, state: _RunState, batches: list[tuple[SourceAdapter, list[RawSpec]]]) -> None:
        claims: list[Claim] = []
        identities: dict[str, BoardIdentity] = {}
        for adapter, records in batches:
            for raw in records:
                metrics.raw_records_total.labels(source=raw.source, record_type="spec").inc()
                try:
                    identity = resolve_spec_identity(raw)
                    record_claims = spec_claims(raw, identity.board_key, identity.profile_variant)
                except IdentityError as e:
                    self._reject(state, raw.source, e, "identity")
                    continue
                except CatalogError as e:
                    self._reject(state, raw.source, ValidationError(f"{raw.model}: {e}"), "validation")
                    continue

                await self.store.upsert_board(identity, year=year_of(raw), description=raw.description)
                state.seen.setdefault(identity.board_key, SpecTarget(identity.brand, identity.model, identity.board_key))
                identities.setdefault(identity.board_key, identity)
                claims.extend(record_claims)

        state.claims.add(await self.engine.ingest(claims, identities))

    # ------------------------------------------------------------------ run

    def _adapters_by_type(self, sids: list[str]) -> dict[SourceType, list[SourceAdapter]]:
        grouped: dict[SourceType, list[SourceAdapter]] = {t: [] for t in SourceType}
        for sid in sids:
            adapter = self.registry.create(sid, self.pages)
            adapter.reset_for_run()
            grouped[self.registry.source_type(sid)].append(adapter)
        return grouped

    async def run(self, config: Optional[RunConfig] = None) -> PipelineResult:
        """
        Execute one run.

        Phases: listings (retailers and ``extra_scraped_boards``), specs
        (manufacturers), enrichment (review sites, targeted at the boards
        seen so far). Source failures end up in ``errors``; only storage
        failures propagate.

        Returns:
            PipelineResult with the completed run, its boards and errors
        """
        config = config or RunConfig()
        start = time.monotonic()
        requests_before = self.pages.network_requests

        sids = self.registry.select(config.retailers, config.manufacturers, config.sites)
        run_id = uuid.uuid4().hex
        await self.store.create_run(run_id, sids, config.to_json())
        await self.store.update_run(run_id, status="running")
        run_log = get_logger(__name__, run_id=run_id)
        run_log.info(f"Run {run_id} started with {len(sids)} sources: {', '.join(sids) or '-'}")

        state = _RunState(run_id=run_id)
        adapters = self._adapters_by_type(sids)

        if not config.skip_listings:
            results = await self._run_phase(
                "listings",
                adapters[SourceType.RETAILER],
                lambda a: a.search_listings(config.search),
                state,
            )
            batches: list[tuple[Optional[SourceAdapter], list[RawListing]]] = list(results)
            if config.extra_scraped_boards:
                batches.append((None, list(config.extra_scraped_boards)))
            await self._process_listings(state, batches)

        if not config.skip_manufacturers:
            results = await self._run_phase(
                "specs",
                adapters[SourceType.MANUFACTURER],
                lambda a: a.scrape_specs(None),
                state,
            )
            await self._process_specs(state, results)

        if not config.skip_enrichment and adapters[SourceType.REVIEW_SITE]:
            targets = [state.seen[key] for key in sorted(state.seen)]
            results = await self._run_phase(
                "enrichment",
                adapters[SourceType.REVIEW_SITE],
                lambda a: a.scrape_specs(targets),
                state,
            )
            await self._process_specs(state, results)

        boards = await self.store.get_boards_with_listings(run_id)
        listed = {entry.board.board_key for entry in boards}
        for board in await self.store.get_boards(k for k in state.seen if k not in listed):
            boards.append(BoardWithListings(board=board))
        boards.sort(key=lambda entry: entry.board.board_key)

        duration = time.monotonic() - start
        run = await self.store.update_run(
            run_id,
            status="complete",
            completed_at=utcnow(),
            board_count=len(boards),
            listing_count=state.listing_count,
            error_count=len(state.errors),
            rejected_count=state.rejected,
            duration_ms=int(duration * 1000),
        )

        metrics.record_pipeline_run("complete", duration)
        metrics.boards_in_catalog.set(len(await self.store.claimed_board_keys()))
        network_requests = self.pages.network_requests - requests_before
        run_log.info(
            f"Run {run_id} complete: {len(boards)} boards, {state.listing_count} listings, "
            f"{len(state.errors)} errors, {state.rejected} rejected, {network_requests} network requests "
            f"in {duration:.1f}s"
        )

        return PipelineResult(
            run=run,
            boards=boards,
            errors=state.errors,
            claims=state.claims,
            network_requests=network_requests,
        )


async def run_search_pipeline(
    config: Optional[RunConfig] = None,
    registry: Optional[AdapterRegistry] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> PipelineResult:
    """
    Run the pipeline against the application database and a fresh HTTP client.

    Pass the long-lived ``engine`` so runs and maintenance share its
    per-board locks; its store is used for the run.
    """
    from boardscout.db.session import AsyncSessionLocal, init_db
    from boardscout.db.store import SqlCatalogStore
    from boardscout.ingest.http_cache import HTTPCache
    from boardscout.ingest.http_client import create_client

    await init_db()
    store = engine.store if engine is not None else SqlCatalogStore(AsyncSessionLocal)
    async with create_client() as client:
        pages = PageFetcher(client, HTTPCache(AsyncSessionLocal))
        orchestrator = RunOrchestrator(store, pages, registry=registry, engine=engine)
        return await orchestrator.run(config)
