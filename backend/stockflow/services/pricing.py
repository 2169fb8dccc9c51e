# Overview: Quantity-tiered unit pricing for variants.

from __future__ import annotations

from decimal import Decimal
from fractions import Fraction
from typing import Iterable, Protocol

from ..errors import InvalidPricingTiers
from ..money import to_money


class Tier(Protocol):
    min_qty: int
    value: Decimal


def validate_pricing_tiers(tiers: Iterable[Tier]) -> list[Tier]:
    """
    Check a variant's tier table and return it sorted.

    Rules: at least one tier, lowest min_qty is 1, thresholds unique and
    ascending, values non-negative.
    """
    tiers = list(tiers)
    if not tiers:
        raise InvalidPricingTiers("Variant has no pricing tiers")

    ordered = sorted(tiers, key=lambda t: t.min_qty)
    if ordered[0].min_qty != 1:
        raise InvalidPricingTiers(
            "Lowest pricing tier must start at quantity 1",
            details={"min_qty": ordered[0].min_qty},
        )

    seen = set()
    for tier in ordered:
        if tier.min_qty in seen:
            raise InvalidPricingTiers(
                f"Duplicate pricing tier threshold {tier.min_qty}",
                details={"min_qty": tier.min_qty},
            )
        seen.add(tier.min_qty)
        if Decimal(tier.value) < 0:
            raise InvalidPricingTiers(
                "Pricing tier value cannot be negative",
                details={"min_qty": tier.min_qty},
            )
    return ordered


def resolve_tier_price(tiers: Iterable[Tier], base_quantity: int) -> Decimal:
    """
    Per-base-unit price for a requested base quantity.

    The tier with the largest min_qty <= base_quantity wins. If none
    qualifies the lowest tier is the floor.
    """
    ordered = validate_pricing_tiers(tiers)
    chosen = ordered[0]
    for tier in ordered:
        if tier.min_qty <= base_quantity:
            chosen = tier
        else:
            break
    return Decimal(chosen.value)


def unit_price_for(tier_value: Decimal, multiplier: Fraction) -> Decimal:
    """Price of one sold unit: per-base-unit tier value x base units in that unit."""
    exact = Decimal(tier_value) * Decimal(multiplier.numerator) / Decimal(multiplier.denominator)
    return to_money(exact, "unit_price")
