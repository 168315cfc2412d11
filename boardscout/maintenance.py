"""Catalog maintenance: tier purges, forced re-reconciliation, reports, cache upkeep."""

import logging
from dataclasses import asdict
from typing import Any, Iterable, Optional

from boardscout.db.store import CatalogStore
from boardscout.ingest.http_cache import HTTPCache
from boardscout.reconcile.engine import PurgeReport, ReconciliationEngine

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Operator actions over the stored catalog. Nothing here scrapes."""

    def __init__(
        self,
        store: CatalogStore,
        engine: Optional[ReconciliationEngine] = None,
        cache: Optional[HTTPCache] = None,
    ):
        self.store = store
        self.engine = engine or ReconciliationEngine(store)
        self.cache = cache

    async def purge_tier(self, tier: str) -> PurgeReport:
        """
        Delete all claims of a source tier and re-resolve affected boards.

        Raises:
            ValueError: If the tier is empty
        """
        if not tier or not tier.strip():
            raise ValueError("Tier is required")
        report = await self.engine.purge_tier(tier)
        logger.info(
            f"Maintenance purge of {report.tier}: {report.claims_deleted} claims, "
            f"{len(report.boards_affected)} boards"
        )
        return report

    async def force_reconcile(self, board_keys: Optional[Iterable[str]] = None) -> int:
        """Re-resolve boards from stored claims (all boards when None)."""
        return await self.engine.re_reconcile(board_keys)

    async def coverage_report(self) -> dict[str, Any]:
        return await self.store.coverage()

    async def board_audit(self, board_key: str) -> Optional[dict[str, Any]]:
        """
        Provenance view of one board.

        Returns:
            Stored resolved values, every claim per field, and what the
            current precedence table would resolve (with conflicts). None if
            the board has neither a row nor claims.
        """
        board = await self.store.get_board(board_key)
        claims = await self.store.get_claims(board_key)
        if board is None and not claims:
            return None

        by_field: dict[str, list] = {}
        for claim in claims:
            by_field.setdefault(claim.field, []).append(claim)

        fields = {}
        for field_name in sorted(by_field):
            ordered = self.engine.precedence.sort(by_field[field_name])
            resolved = self.engine.reconcile(board_key, field_name, ordered)
            stored_source = (board.resolved_sources or {}).get(field_name) if board else None
            fields[field_name] = {
                "resolved": asdict(resolved) if resolved else None,
                "stored_source": stored_source,
                "stale": (resolved.source if resolved else None) != stored_source,
                "claims": [asdict(c) for c in ordered],
            }

        return {
            "board_key": board_key,
            "brand": board.brand if board else None,
            "model": board.model if board else None,
            "gender": board.gender if board else None,
            "resolved_sources": dict(board.resolved_sources or {}) if board else {},
            "fields": fields,
        }

    async def cache_stats(self) -> dict[str, Any]:
        if self.cache is None:
            return {"enabled": False, "cached_urls": 0, "total_bytes": 0}
        return await self.cache.stats()

    async def clear_cache(self) -> int:
        if self.cache is None:
            return 0
        return await self.cache.clear()
