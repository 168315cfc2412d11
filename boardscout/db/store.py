"""Catalog store: key-scoped async reads and writes over the catalog tables.

The orchestrator, reconciliation engine, API and maintenance jobs all go
through a ``CatalogStore`` instead of sharing sessions, so each operation is
its own short transaction and tests can swap in a fresh in-memory database.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boardscout.db.models import Board, Listing, SearchRun, SpecClaim, utcnow
from boardscout.normalize.identity import BoardIdentity, gender_from_key
from boardscout.normalize.processor import NormalizedListing
from boardscout.normalize.specs import ability_range, terrain_category
from boardscout.reconcile.claims import Claim, ResolvedValue

logger = logging.getLogger(__name__)

# Fields with a dedicated Board column; anything else goes to extra_attributes
BOARD_COLUMNS = ("flex", "profile", "shape", "category", "ability_level", "msrp_usd")
# Provenance recorded when the category comes from terrain scores
TERRAIN_DERIVED = "derived:terrain"


@dataclass
class BoardWithListings:
    """A board and the listings a run recorded for it."""

    board: Board
    listings: list[Listing] = field(default_factory=list)


def _claim_from_row(row: SpecClaim) -> Claim:
    return Claim(
        board_key=row.board_key,
        field=row.field,
        source=row.source,
        value=row.value,
        source_url=row.source_url,
        observed_at=row.observed_at,
    )


def _source_filter(tier: str):
    """Claims whose source is the bare tier or ``tier:<name>``."""
    tier = tier.strip().lower()
    return or_(SpecClaim.source == tier, SpecClaim.source.like(f"{tier}:%"))


class CatalogStore(ABC):
    """Storage interface used by the pipeline."""

    # Runs
    @abstractmethod
    async def create_run(self, run_id: str, sources: list[str], config: Optional[dict] = None) -> SearchRun: ...

    @abstractmethod
    async def update_run(self, run_id: str, **values: Any) -> Optional[SearchRun]: ...

    @abstractmethod
    async def get_latest_run(self) -> Optional[SearchRun]: ...

    @abstractmethod
    async def get_run_by_id(self, run_id: str) -> Optional[SearchRun]: ...

    @abstractmethod
    async def get_all_runs(self, limit: Optional[int] = None) -> list[SearchRun]: ...

    # Boards and listings
    @abstractmethod
    async def upsert_board(
        self, identity: BoardIdentity, year: Optional[int] = None, description: Optional[str] = None
    ) -> None: ...

    @abstractmethod
    async def get_board(self, board_key: str) -> Optional[Board]: ...

    @abstractmethod
    async def get_boards(self, board_keys: Iterable[str]) -> list[Board]: ...

    @abstractmethod
    async def insert_listings(self, run_id: str, listings: list[NormalizedListing]) -> int: ...

    @abstractmethod
    async def get_boards_with_listings(self, run_id: Optional[str] = None) -> list[BoardWithListings]: ...

    # Claims
    @abstractmethod
    async def get_claim(self, board_key: str, field: str, source: str) -> Optional[Claim]: ...

    @abstractmethod
    async def get_claims(self, board_key: str, field: Optional[str] = None) -> list[Claim]: ...

    @abstractmethod
    async def put_claim(self, claim: Claim) -> None: ...

    @abstractmethod
    async def delete_claims_by_tier(self, tier: str) -> list[tuple[str, str]]: ...

    @abstractmethod
    async def claimed_board_keys(self) -> list[str]: ...

    @abstractmethod
    async def get_spec_sources(self, board_key: str) -> dict[str, list[dict[str, Any]]]: ...

    # Resolution
    @abstractmethod
    async def apply_resolution(
        self,
        board_key: str,
        field: str,
        resolved: Optional[ResolvedValue],
        identity: Optional[BoardIdentity] = None,
    ) -> None: ...

    @abstractmethod
    async def coverage(self) -> dict[str, Any]: ...


class SqlCatalogStore(CatalogStore):
    """SQLAlchemy-backed catalog store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        # SQLite allows one writer; keep writes from interleaving across tasks
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------ runs

    async def create_run(self, run_id: str, sources: list[str], config: Optional[dict] = None) -> SearchRun:
        run = SearchRun(
            id=run_id,
            status="pending",
            started_at=utcnow(),
            sources_queried=",".join(sources),
            config_json=config,
        )
        async with self._write_lock:
            async with self.session_factory() as session:
                session.add(run)
                await session.commit()
                await session.refresh(run)
        return run

    async def update_run(self, run_id: str, **values: Any) -> Optional[SearchRun]:
        """Update a run with new values."""
        async with self._write_lock:
            async with self.session_factory() as session:
                run = await session.get(SearchRun, run_id)
                if run is None:
                    return None
                for key, value in values.items():
                    if hasattr(run, key):
                        setattr(run, key, value)
                await session.commit()
                await session.refresh(run)
                return run

    async def get_latest_run(self) -> Optional[SearchRun]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SearchRun).order_by(desc(SearchRun.started_at), desc(SearchRun.id)).limit(1)
            )
            return result.scalar_one_or_none()

    async def get_run_by_id(self, run_id: str) -> Optional[SearchRun]:
        async with self.session_factory() as session:
            return await session.get(SearchRun, run_id)

    async def get_all_runs(self, limit: Optional[int] = None) -> list[SearchRun]:
        query = select(SearchRun).order_by(desc(SearchRun.started_at), desc(SearchRun.id))
        if limit:
            query = query.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # --------------------------------------------------- boards and listings

    async def upsert_board(
        self, identity: BoardIdentity, year: Optional[int] = None, description: Optional[str] = None
    ) -> None:
        """Create the board on first sighting; fill year/description if still empty."""
        async with self._write_lock:
            async with self.session_factory() as session:
                board = await session.get(Board, identity.board_key)
                if board is None:
                    session.add(
                        Board(
                            board_key=identity.board_key,
                            brand=identity.brand,
                            model=identity.model,
                            gender=identity.gender,
                            year=year,
                            description=description,
                            resolved_sources={},
                            extra_attributes={},
                        )
                    )
                else:
                    changed = False
                    if board.year is None and year is not None:
                        board.year = year
                        changed = True
                    if not board.description and description:
                        board.description = description
                        changed = True
                    if changed:
                        board.updated_at = utcnow()
                await session.commit()

    async def get_board(self, board_key: str) -> Optional[Board]:
        async with self.session_factory() as session:
            return await session.get(Board, board_key)

    async def get_boards(self, board_keys: Iterable[str]) -> list[Board]:
        keys = list(board_keys)
        if not keys:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(Board).where(Board.board_key.in_(keys)).order_by(Board.board_key)
            )
            return list(result.scalars().all())

    async def insert_listings(self, run_id: str, listings: list[NormalizedListing]) -> int:
        """
        Insert a run's listings.

        Duplicates of (retailer, url, length_cm) within the batch keep the
        first occurrence.

        Returns:
            Number of rows inserted
        """
        seen: set[tuple] = set()
        rows = []
        for item in listings:
            key = (item.retailer, item.url, item.length_cm)
            if key in seen:
                continue
            seen.add(key)
            rows.append(
                Listing(
                    run_id=run_id,
                    board_key=item.board_key,
                    retailer=item.retailer,
                    url=item.url,
                    title=item.title,
                    image_url=item.image_url,
                    length_cm=item.length_cm,
                    price=item.price,
                    original_price=item.original_price,
                    currency=item.currency,
                    price_usd=item.price_usd,
                    original_price_usd=item.original_price_usd,
                    region=item.region,
                    discount_percent=item.discount_percent,
                    condition=item.condition,
                    gender=item.gender,
                    availability=item.availability,
                    stock_count=item.stock_count,
                    scraped_at=item.scraped_at,
                )
            )
        if not rows:
            return 0
        async with self._write_lock:
            async with self.session_factory() as session:
                session.add_all(rows)
                await session.commit()
        return len(rows)

    async def get_boards_with_listings(self, run_id: Optional[str] = None) -> list[BoardWithListings]:
        """
        Boards with their listings for a run (the latest run when None).

        Boards are ordered by key, listings by retailer, url and length.
        """
        if run_id is None:
            latest = await self.get_latest_run()
            if latest is None:
                return []
            run_id = latest.id

        async with self.session_factory() as session:
            result = await session.execute(
                select(Listing)
                .where(Listing.run_id == run_id)
                .order_by(Listing.board_key, Listing.retailer, Listing.url, Listing.length_cm)
            )
            listings = list(result.scalars().all())
            if not listings:
                return []
            keys = sorted({listing.board_key for listing in listings})
            boards = {
                board.board_key: board
                for board in (
                    await session.execute(select(Board).where(Board.board_key.in_(keys)))
                ).scalars()
            }

        grouped: dict[str, BoardWithListings] = {}
        for listing in listings:
            entry = grouped.get(listing.board_key)
            if entry is None:
                entry = grouped[listing.board_key] = BoardWithListings(board=boards[listing.board_key])
            entry.listings.append(listing)
        return [grouped[key] for key in keys]

    # ---------------------------------------------------------------- claims

    async def get_claim(self, board_key: str, field: str, source: str) -> Optional[Claim]:
        async with self.session_factory() as session:
            row = await session.get(SpecClaim, (board_key, field, source))
            return _claim_from_row(row) if row else None

    async def get_claims(self, board_key: str, field: Optional[str] = None) -> list[Claim]:
        query = select(SpecClaim).where(SpecClaim.board_key == board_key)
        if field is not None:
            query = query.where(SpecClaim.field == field)
        query = query.order_by(SpecClaim.field, SpecClaim.source)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_claim_from_row(row) for row in result.scalars()]

    async def put_claim(self, claim: Claim) -> None:
        """Insert or overwrite the claim for (board_key, field, source)."""
        async with self._write_lock:
            async with self.session_factory() as session:
                row = await session.get(SpecClaim, (claim.board_key, claim.field, claim.source))
                if row is None:
                    session.add(
                        SpecClaim(
                            board_key=claim.board_key,
                            field=claim.field,
                            source=claim.source,
                            value=claim.value,
                            source_url=claim.source_url,
                            observed_at=claim.observed_at,
                        )
                    )
                else:
                    row.value = claim.value
                    row.source_url = claim.source_url
                    row.observed_at = claim.observed_at
                await session.commit()

    async def delete_claims_by_tier(self, tier: str) -> list[tuple[str, str]]:
        """
        Delete every claim from a source tier.

        Returns:
            The (board_key, field) pairs that lost a claim
        """
        async with self._write_lock:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(SpecClaim.board_key, SpecClaim.field).where(_source_filter(tier))
                )
                rows = [(r[0], r[1]) for r in result.all()]
                if rows:
                    await session.execute(delete(SpecClaim).where(_source_filter(tier)))
                    await session.commit()
        return rows

    async def claimed_board_keys(self) -> list[str]:
        """Every board key with at least one claim or a board row."""
        async with self.session_factory() as session:
            claimed = await session.execute(select(SpecClaim.board_key).distinct())
            boards = await session.execute(select(Board.board_key))
            return sorted(set(claimed.scalars()) | set(boards.scalars()))

    async def get_spec_sources(self, board_key: str) -> dict[str, list[dict[str, Any]]]:
        """
        All claims for a board grouped by field, flagged with the winner.

        Returns:
            {field: [{source, value, source_url, observed_at, resolved}, ...]}
        """
        board = await self.get_board(board_key)
        winners = dict(board.resolved_sources or {}) if board else {}
        grouped: dict[str, list[dict[str, Any]]] = {}
        for claim in await self.get_claims(board_key):
            grouped.setdefault(claim.field, []).append(
                {
                    "source": claim.source,
                    "value": claim.value,
                    "source_url": claim.source_url,
                    "observed_at": claim.observed_at,
                    "resolved": winners.get(claim.field) == claim.source,
                }
            )
        return grouped

    # ------------------------------------------------------------ resolution

    async def apply_resolution(
        self,
        board_key: str,
        field: str,
        resolved: Optional[ResolvedValue],
        identity: Optional[BoardIdentity] = None,
    ) -> None:
        """
        Project a resolved value onto the board; None clears the field.

        Boards are created when a claim arrives before any listing or spec
        sheet registered them, using ``identity`` for the display brand and
        model, or the key parts when none is known.
        While no claim resolves the category, it is derived from the
        resolved terrain scores.
        """
        value = resolved.value if resolved else None
        async with self._write_lock:
            async with self.session_factory() as session:
                board = await session.get(Board, board_key)
                if board is None:
                    if resolved is None:
                        return
                    if identity is None:
                        parts = board_key.split("|")
                        identity = BoardIdentity(
                            board_key=board_key,
                            brand=parts[0],
                            model=parts[1] if len(parts) > 1 else parts[0],
                            gender=gender_from_key(board_key),
                        )
                    board = Board(
                        board_key=board_key,
                        brand=identity.brand,
                        model=identity.model,
                        gender=identity.gender,
                        resolved_sources={},
                        extra_attributes={},
                    )
                    session.add(board)

                if field == "msrp_usd":
                    board.msrp_usd = Decimal(value) if value is not None else None
                elif field == "ability_level":
                    board.ability_level = value
                    board.ability_level_min, board.ability_level_max = ability_range(value)
                elif field in BOARD_COLUMNS:
                    setattr(board, field, value)
                else:
                    extras = dict(board.extra_attributes or {})
                    if value is None:
                        extras.pop(field, None)
                    else:
                        extras[field] = value
                    board.extra_attributes = extras

                sources = dict(board.resolved_sources or {})
                if resolved is None:
                    sources.pop(field, None)
                else:
                    sources[field] = resolved.source
                # No claim resolves the category: fall back to the terrain scores
                if sources.get("category") in (None, TERRAIN_DERIVED):
                    board.category = terrain_category(board.extra_attributes or {})
                    if board.category:
                        sources["category"] = TERRAIN_DERIVED
                    else:
                        sources.pop("category", None)
                board.resolved_sources = sources
                board.updated_at = utcnow()
                await session.commit()

    async def coverage(self) -> dict[str, Any]:
        """
        Catalog coverage report.

        Returns:
            Board count, per-field resolved counts, per-tier claim counts and
            boards lacking each core field
        """
        async with self.session_factory() as session:
            total = (await session.execute(select(func.count(Board.board_key)))).scalar_one()

            fields: dict[str, int] = {}
            missing: dict[str, list[str]] = {}
            for column in BOARD_COLUMNS:
                attr = getattr(Board, column)
                fields[column] = (
                    await session.execute(select(func.count(Board.board_key)).where(attr.is_not(None)))
                ).scalar_one()
                missing[column] = list(
                    (
                        await session.execute(
                            select(Board.board_key).where(attr.is_(None)).order_by(Board.board_key)
                        )
                    ).scalars()
                )

            claims_by_source = {
                row[0]: row[1]
                for row in (
                    await session.execute(
                        select(SpecClaim.source, func.count()).group_by(SpecClaim.source).order_by(SpecClaim.source)
                    )
                ).all()
            }

        claims_by_tier: dict[str, int] = {}
        for source, count in claims_by_source.items():
            tier = source.split(":", 1)[0]
            claims_by_tier[tier] = claims_by_tier.get(tier, 0) + count

        return {
            "total_boards": total,
            "resolved_fields": fields,
            "claims_by_tier": claims_by_tier,
            "claims_by_source": claims_by_source,
            "missing": missing,
        }
