"""
Purchase earning tiers.

A customer's tier is derived from their lifetime spend with the store and
sets how many points each dollar of a purchase earns.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union


@dataclass(frozen=True)
class Tier:
    """Spend threshold and earning rate."""
    name: str
    min_spent: Decimal
    points_per_dollar: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tier':
        return cls(
            name=data['name'],
            min_spent=Decimal(str(data.get('min_spent', 0))),
            points_per_dollar=int(data.get('points_per_dollar', 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'min_spent': float(self.min_spent),
            'points_per_dollar': self.points_per_dollar
        }


DEFAULT_TIERS: List[Tier] = [
    Tier('Bronze', Decimal('0'), 5),
    Tier('Silver', Decimal('250'), 6),
    Tier('Gold', Decimal('750'), 8),
    Tier('Platinum', Decimal('1500'), 10),
]

BASE_TIER = DEFAULT_TIERS[0]


def load_tiers(raw: Optional[Iterable[Union[Tier, Dict[str, Any]]]]) -> List[Tier]:
    """
    Build a tier table from config entries, sorted ascending by threshold.

    An empty or missing table falls back to DEFAULT_TIERS.
    """
    tiers = [t if isinstance(t, Tier) else Tier.from_dict(t) for t in (raw or [])]
    if not tiers:
        return list(DEFAULT_TIERS)
    return sorted(tiers, key=lambda t: t.min_spent)


def tier_for(cumulative_spend, tiers: Sequence[Tier] = None) -> Tier:
    """
    Return the highest tier whose threshold is at or below the spend.

    Spend below every threshold yields the lowest configured tier; an
    empty table yields BASE_TIER.

    Args:
        cumulative_spend: Lifetime spend in store currency (non-negative)
        tiers: Tier table; defaults to DEFAULT_TIERS

    Returns:
        The matching Tier
    """
    if tiers is None:
        tiers = DEFAULT_TIERS
    if not tiers:
        return BASE_TIER

    table = sorted(tiers, key=lambda t: t.min_spent)
    spend = Decimal(str(cumulative_spend or 0))

    matched = table[0]
    for tier in table:
        if tier.min_spent <= spend:
            matched = tier
        else:
            break
    return matched


def calculate_points_for_purchase(order_total, tier: Tier) -> int:
    """Points earned for an order: floor(total * points_per_dollar)."""
    total = Decimal(str(order_total or 0))
    if total <= 0:
        return 0
    return int(math.floor(total * tier.points_per_dollar))
