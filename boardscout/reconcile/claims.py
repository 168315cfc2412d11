"""Spec claims and the values resolved from them."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from boardscout.db.models import utcnow


@dataclass
class Claim:
    """One source's assertion about one field of one board."""

    board_key: str
    field: str
    source: str  # "manufacturer:burton", "retailer:evo", "inferred:description"
    value: Optional[str]
    source_url: Optional[str] = None
    observed_at: datetime = None

    def __post_init__(self):
        if self.observed_at is None:
            self.observed_at = utcnow()

    @property
    def tier(self) -> str:
        return tier_of(self.source)


@dataclass
class ReconciliationConflict:
    """A non-null claim that disagrees with the resolved value. Informational."""

    board_key: str
    field: str
    winning_source: str
    winning_value: str
    losing_source: str
    losing_value: str


@dataclass
class ResolvedValue:
    """The winning claim for a (board, field) plus its provenance."""

    field: str
    value: str
    source: str
    tier: str
    observed_at: datetime
    source_url: Optional[str] = None
    agreement: bool = True
    conflicts: list[ReconciliationConflict] = field(default_factory=list)


def tier_of(source: str) -> str:
    """``"manufacturer:burton"`` -> ``"manufacturer"``; a bare tier is its own tier."""
    return source.split(":", 1)[0].strip().lower()
