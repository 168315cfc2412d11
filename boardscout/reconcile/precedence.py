"""Source precedence table."""

from enum import Enum
from typing import Optional, Sequence

from boardscout.config import settings
from boardscout.reconcile.claims import Claim, tier_of


class SourceTier(str, Enum):
    """Known source tiers, highest default precedence first."""

    MANUFACTURER = "manufacturer"
    REVIEW_SITE = "review-site"
    RETAILER = "retailer"
    INFERRED = "inferred"
    HEURISTIC = "heuristic"


class PrecedenceTable:
    """
    Ordered tier list deciding which claim wins.

    Claims are ranked by tier position (unlisted tiers rank below every listed
    one), then by most recent ``observed_at``, then by source id ascending, so
    the order is total and independent of insertion order.
    """

    def __init__(self, order: Optional[Sequence[str]] = None):
        tiers = settings.source_precedence if order is None else order
        self.order = [t.strip().lower() for t in tiers]
        self._rank = {tier: i for i, tier in enumerate(self.order)}

    def rank(self, source: str) -> int:
        return self._rank.get(tier_of(source), len(self.order))

    def sort(self, claims: Sequence[Claim]) -> list[Claim]:
        """Claims best-first."""
        ordered = sorted(claims, key=lambda c: c.source)
        ordered.sort(key=lambda c: c.observed_at, reverse=True)
        ordered.sort(key=lambda c: self.rank(c.source))
        return ordered
