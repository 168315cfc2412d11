"""SQLAlchemy database models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so everything is stored naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SearchRun(Base):
    """One pipeline execution and its listing snapshot."""

    __tablename__ = "search_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending, running, complete
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sources_queried: Mapped[str] = mapped_column(Text, default="", nullable=False)  # comma-separated source ids
    config_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Results
    board_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    listing_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    listings: Mapped[list["Listing"]] = relationship("Listing", back_populates="run")


class Board(Base):
    """Canonical catalog entry for one (brand, model, gender-segment)."""

    __tablename__ = "boards"

    board_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    brand: Mapped[str] = mapped_column(String(128), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str] = mapped_column(String(16), default="unisex", nullable=False)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Resolved attributes (null until a claim exists)
    flex: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    profile: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    shape: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    ability_level: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ability_level_min: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    ability_level_max: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    msrp_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Provenance: field -> winning source id
    resolved_sources: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    # Resolved values for fields without a dedicated column
    extra_attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    listings: Mapped[list["Listing"]] = relationship("Listing", back_populates="board")


class Listing(Base):
    """A priced observation of a board at one retailer in one run."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), ForeignKey("search_runs.id"), nullable=False)
    board_key: Mapped[str] = mapped_column(String(255), ForeignKey("boards.board_key"), nullable=False)
    retailer: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    length_cm: Mapped[Optional[float]] = mapped_column(nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)  # Strikethrough/was price
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    # Converted at a fixed rate; null when the currency has none
    price_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    original_price_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    discount_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    condition: Mapped[str] = mapped_column(String(16), default="new", nullable=False)
    gender: Mapped[str] = mapped_column(String(16), default="unisex", nullable=False)
    availability: Mapped[str] = mapped_column(String(16), default="unknown", nullable=False)
    stock_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    run: Mapped["SearchRun"] = relationship("SearchRun", back_populates="listings")
    board: Mapped["Board"] = relationship("Board", back_populates="listings")

    __table_args__ = (
        Index("ix_listings_run_id", "run_id"),
        Index("ix_listings_board_key", "board_key"),
    )


class SpecClaim(Base):
    """One source's assertion about one attribute of one board."""

    __tablename__ = "spec_claims"

    board_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    field: Mapped[str] = mapped_column(String(64), primary_key=True)
    source: Mapped[str] = mapped_column(String(128), primary_key=True)  # "manufacturer:burton", "retailer:evo"
    value: Mapped[str] = mapped_column(Text, nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_spec_claims_source", "source"),)


class HttpCacheEntry(Base):
    """Raw fetched body for one URL, shared across runs."""

    __tablename__ = "http_cache"

    url_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
