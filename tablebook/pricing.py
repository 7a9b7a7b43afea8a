"""Deposit cost per party size."""
from __future__ import annotations

from typing import Iterable, Optional

from .errors import OverlappingTierError, ValidationError


def matching_tier(tiers: Iterable, party_size: int):
    """The tier covering ``party_size``; the lowest range wins on a shared boundary."""
    candidates = [t for t in tiers if t.min_people <= party_size <= t.max_people]
    if not candidates:
        return None
    return min(candidates, key=lambda t: (t.min_people, t.max_people))


def cost_for(flat_cost: Optional[int], tiers: Iterable, party_size: int) -> int:
    """Deposit for a party.

    Any tier overrides the flat cost. Tiers need not cover every size: with
    tiers configured and none matching, no deposit is charged.
    """
    if party_size is None or party_size < 1:
        raise ValidationError("Party size must be at least 1")
    tiers = list(tiers)
    if tiers:
        tier = matching_tier(tiers, party_size)
        return tier.cost if tier is not None else 0
    return flat_cost or 0


def _touches(min_a: int, max_a: int, min_b: int, max_b: int) -> bool:
    return max_a == min_b and min_a < max_a and min_b < max_b


def ranges_overlap(min_a: int, max_a: int, min_b: int, max_b: int) -> bool:
    """Inclusive overlap, except that one range may begin where another ends"""
    low, high = max(min_a, min_b), min(max_a, max_b)
    if low > high:
        return False
    if low < high:
        return True
    return not (_touches(min_a, max_a, min_b, max_b) or _touches(min_b, max_b, min_a, max_a))


def validate_tier(existing: Iterable, min_people: int, max_people: int, cost: int) -> None:
    if min_people is None or max_people is None or cost is None:
        raise ValidationError("Minimum people, maximum people and cost are required")
    if min_people < 1:
        raise ValidationError("Minimum people must be at least 1")
    if min_people > max_people:
        raise ValidationError("Minimum people cannot be greater than maximum people")
    if cost < 0:
        raise ValidationError("Cost cannot be negative")
    for tier in existing:
        if ranges_overlap(min_people, max_people, tier.min_people, tier.max_people):
            raise OverlappingTierError(
                f"Range {min_people}-{max_people} overlaps with existing tier "
                f"{tier.min_people}-{tier.max_people}"
            )
