"""Spec reconciliation engine.

Merges every source's claims about a (board, field) into one resolved value.
Losing claims are kept, so a board can be re-resolved at any time (after a
precedence change or a purge) without scraping again.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Mapping, Optional, Sequence

from boardscout import metrics
from boardscout.db.store import CatalogStore
from boardscout.normalize.identity import BoardIdentity
from boardscout.reconcile.claims import Claim, ReconciliationConflict, ResolvedValue, tier_of
from boardscout.reconcile.precedence import PrecedenceTable

logger = logging.getLogger(__name__)


@dataclass
class IngestStats:
    """Outcome counts for one ``ingest`` call."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def add(self, other: "IngestStats") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped

    def as_dict(self) -> dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "skipped": self.skipped}


@dataclass
class PurgeReport:
    """What a tier purge removed and which boards it touched."""

    tier: str
    claims_deleted: int
    boards_affected: list[str] = field(default_factory=list)
    fields_cleared: int = 0


class ReconciliationEngine:
    """
    Resolve claims by source precedence.

    Args:
        store: Catalog store holding claims and boards
        precedence: Tier order; defaults to ``settings.source_precedence``
    """

    def __init__(self, store: CatalogStore, precedence: Optional[PrecedenceTable] = None):
        self.store = store
        self.precedence = precedence or PrecedenceTable()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _board_lock(self, board_key: str) -> AsyncIterator[None]:
        """Per-board lock, dropped once no caller holds or waits on it."""
        lock = self._locks.setdefault(board_key, asyncio.Lock())
        self._lock_users[board_key] = self._lock_users.get(board_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[board_key] -= 1
            if not self._lock_users[board_key]:
                del self._lock_users[board_key]
                del self._locks[board_key]

    def reconcile(self, board_key: str, field: str, claims: Sequence[Claim]) -> Optional[ResolvedValue]:
        """
        Pick the resolved value for one (board, field).

        The best-ranked claim with a non-null value wins. Disagreeing claims
        are reported as conflicts and logged at debug; they never fail the
        resolution.

        Returns:
            ResolvedValue, or None when no claim carries a value
        """
        candidates = [
            c for c in claims
            if c.board_key == board_key and c.field == field and c.value is not None
        ]
        if not candidates:
            return None

        ordered = self.precedence.sort(candidates)
        winner = ordered[0]
        conflicts = [
            ReconciliationConflict(
                board_key=board_key,
                field=field,
                winning_source=winner.source,
                winning_value=winner.value,
                losing_source=c.source,
                losing_value=c.value,
            )
            for c in ordered[1:]
            if c.value != winner.value
        ]
        for conflict in conflicts:
            logger.debug(
                f"{board_key} {field}: {conflict.winning_source}={conflict.winning_value!r} "
                f"over {conflict.losing_source}={conflict.losing_value!r}"
            )

        return ResolvedValue(
            field=field,
            value=winner.value,
            source=winner.source,
            tier=tier_of(winner.source),
            observed_at=winner.observed_at,
            source_url=winner.source_url,
            agreement=not conflicts,
            conflicts=conflicts,
        )

    async def resolve_field(
        self, board_key: str, field: str, identity: Optional[BoardIdentity] = None
    ) -> Optional[ResolvedValue]:
        """Re-resolve one field from stored claims and write it to the board."""
        claims = await self.store.get_claims(board_key, field)
        resolved = self.reconcile(board_key, field, claims)
        await self.store.apply_resolution(board_key, field, resolved, identity=identity)
        metrics.spec_resolutions_total.labels(result="resolved" if resolved else "cleared").inc()
        return resolved

    async def _ingest_board(
        self, board_key: str, claims: list[Claim], identity: Optional[BoardIdentity] = None
    ) -> IngestStats:
        stats = IngestStats()
        touched: list[str] = []
        async with self._board_lock(board_key):
            for claim in claims:
                if claim.field not in touched:
                    touched.append(claim.field)
                if claim.value is None:
                    stats.skipped += 1
                    metrics.record_claim_ingested(claim.tier, "skipped")
                    continue

                prior = await self.store.get_claim(claim.board_key, claim.field, claim.source)
                if prior is None:
                    outcome = "inserted"
                elif prior.value != claim.value:
                    outcome = "updated"
                else:
                    outcome = "skipped"

                if outcome != "skipped":
                    await self.store.put_claim(claim)
                setattr(stats, outcome, getattr(stats, outcome) + 1)
                metrics.record_claim_ingested(claim.tier, outcome)

            for field_name in touched:
                await self.resolve_field(board_key, field_name, identity)
        return stats

    async def ingest(
        self, claims: Iterable[Claim], identities: Optional[Mapping[str, BoardIdentity]] = None
    ) -> IngestStats:
        """
        Store claims and re-resolve every (board, field) they touch.

        A claim is "inserted" when its (board, field, source) is new,
        "updated" when the stored value differs, "skipped" when identical.
        Skipped claims write nothing but still trigger re-resolution.
        ``identities`` supplies display brand/model for boards not stored yet.

        Returns:
            IngestStats
        """
        by_board: dict[str, list[Claim]] = defaultdict(list)
        for claim in claims:
            by_board[claim.board_key].append(claim)

        stats = IngestStats()
        for board_key in sorted(by_board):
            identity = identities.get(board_key) if identities else None
            stats.add(await self._ingest_board(board_key, by_board[board_key], identity))
        return stats

    async def _reresolve_board(self, board_key: str, fields: Optional[Iterable[str]] = None) -> list[Optional[ResolvedValue]]:
        async with self._board_lock(board_key):
            if fields is None:
                board = await self.store.get_board(board_key)
                names = {c.field for c in await self.store.get_claims(board_key)}
                if board is not None:
                    names |= set((board.resolved_sources or {}).keys())
                fields = names
            return [await self.resolve_field(board_key, name) for name in sorted(fields)]

    async def purge_tier(self, tier: str) -> PurgeReport:
        """
        Delete every claim of a tier and re-resolve what it touched.

        Fields with no remaining claim fall back to null.
        """
        tier = tier.strip().lower()
        deleted = await self.store.delete_claims_by_tier(tier)

        by_board: dict[str, set[str]] = defaultdict(set)
        for board_key, field_name in deleted:
            by_board[board_key].add(field_name)

        cleared = 0
        for board_key in sorted(by_board):
            results = await self._reresolve_board(board_key, by_board[board_key])
            cleared += sum(1 for r in results if r is None)

        logger.info(
            f"Purged {len(deleted)} {tier} claims across {len(by_board)} boards ({cleared} fields now null)"
        )
        return PurgeReport(
            tier=tier,
            claims_deleted=len(deleted),
            boards_affected=sorted(by_board),
            fields_cleared=cleared,
        )

    async def re_reconcile(self, board_keys: Optional[Iterable[str]] = None) -> int:
        """
        Re-resolve every field of the given boards (all boards when None).

        Returns:
            Number of boards re-resolved
        """
        keys = sorted(set(board_keys)) if board_keys is not None else await self.store.claimed_board_keys()
        for board_key in keys:
            await self._reresolve_board(board_key)
        logger.info(f"Re-reconciled {len(keys)} boards")
        return len(keys)
