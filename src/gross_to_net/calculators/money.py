"""Decimal money helpers.

Rounding:
- Internal compute at full Decimal precision
- Every persisted line rounded to 2 decimals, ROUND_HALF_UP
- Totals are sums of rounded lines, never re-rounded sums of raw amounts
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0")
OUTPUT_PRECISION = Decimal("0.01")
RATE_PRECISION = Decimal("0.000001")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_UP)


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Coerce a stored numeric (Decimal, int, float, str, None) to Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Sum amounts starting from a Decimal zero."""
    total = ZERO
    for amount in amounts:
        total += amount
    return total
