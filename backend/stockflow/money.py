# Overview: Decimal helpers for monetary values and conversion factors.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")

# Maximum price: 999,999,999,999.99 (fits Numeric(14, 2))
MAX_MONEY = Decimal("999999999999.99")


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a JSON/Python value to a 2-place Decimal (half-up).

    Floats go through str() so 0.1 becomes Decimal("0.10"), not the binary
    approximation. Booleans are rejected even though they are ints.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"{field} must be a number")
    if not d.is_finite():
        raise ValueError(f"{field} must be a finite number")
    d = d.quantize(CENT, rounding=ROUND_HALF_UP)
    if abs(d) > MAX_MONEY:
        raise ValueError(f"{field} is too large")
    return d


def money_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a non-monetary Decimal without trailing zeros (12.000000 -> "12")."""
    if value is None:
        return None
    d = Decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal(1)))
    return format(d.normalize(), "f")
