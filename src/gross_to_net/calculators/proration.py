"""Proration of period amounts against effective date windows."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from gross_to_net.calculators.money import ZERO
from gross_to_net.calculators.types import ProrationMethod, ProrationResult

ONE = Decimal("1")


def _inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1


def calculate_proration_factor(
    period_start: date,
    period_end: date,
    effective_start: date | None,
    effective_end: date | None,
    method: ProrationMethod | str | None = ProrationMethod.CALENDAR_DAYS,
) -> ProrationResult:
    """Compute the share of the pay period covered by an effective window.

    Day counts are inclusive of both ends. A missing bound on the effective
    window is unbounded on that side.

    Raises:
        ValueError: If period_end is before period_start
    """
    if period_end < period_start:
        raise ValueError(f"Pay period ends before it starts: {period_start} > {period_end}")

    if not isinstance(method, ProrationMethod):
        method = ProrationMethod.from_code(method)

    total_days = _inclusive_days(period_start, period_end)

    if method == ProrationMethod.NONE:
        return ProrationResult(
            factor=ONE,
            is_prorated=False,
            days_worked=total_days,
            total_days=total_days,
            method=method,
        )

    overlap_start = max(period_start, effective_start) if effective_start else period_start
    overlap_end = min(period_end, effective_end) if effective_end else period_end

    if overlap_end < overlap_start:
        return ProrationResult(
            factor=ZERO,
            is_prorated=True,
            days_worked=0,
            total_days=total_days,
            method=method,
        )

    days_worked = _inclusive_days(overlap_start, overlap_end)
    if days_worked >= total_days:
        return ProrationResult(
            factor=ONE,
            is_prorated=False,
            days_worked=total_days,
            total_days=total_days,
            method=method,
        )

    return ProrationResult(
        factor=Decimal(days_worked) / Decimal(total_days),
        is_prorated=True,
        days_worked=days_worked,
        total_days=total_days,
        method=method,
    )


def apply_proration(amount: Decimal, result: ProrationResult) -> Decimal:
    """Scale an amount by a proration factor (unrounded)."""
    if result.factor == ONE:
        return amount
    return amount * result.factor
