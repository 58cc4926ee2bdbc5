"""Compensation aggregation: every earning source resolved to a local period amount.

Per item the order is fixed:
1. Normalize the stated amount to the run frequency (annualize, then de-annualize)
2. Prorate against the item's own effective window
3. Convert to the run's local currency
4. Round to cents

Allowances, retro adjustments, and expense reimbursements are merged at
their full amounts (converted, never prorated).
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Sequence

from gross_to_net.calculators.currency import CurrencyConverter
from gross_to_net.calculators.money import round_to_cents, to_decimal
from gross_to_net.calculators.proration import apply_proration, calculate_proration_factor
from gross_to_net.calculators.types import (
    AllowanceLine,
    CalculationWarning,
    CompensationItem,
    EarningLine,
    EarningSource,
    EarningsResult,
    PayFrequency,
    ProrationMethod,
    ReimbursementLine,
    RetroLine,
    WarningCode,
)
from gross_to_net.models import (
    EmployeeCompensation,
    EmployeePosition,
    ExpenseClaim,
    PeriodAllowance,
    RetroactiveAdjustment,
)

logger = logging.getLogger(__name__)

BASE_SALARY_CODE = "BASE_SALARY"

# Assumed for items stored without a frequency
DEFAULT_ITEM_FREQUENCY = PayFrequency.MONTHLY


def normalize_to_frequency(
    amount: Decimal, item_frequency: str | None, run_frequency: PayFrequency
) -> Decimal | None:
    """Restate an amount from its own frequency to the run frequency.

    Returns None if the item frequency is not recognised.
    """
    frequency = PayFrequency.parse(item_frequency)
    if frequency is None:
        return None
    if frequency == run_frequency:
        return amount
    annual = amount * frequency.periods_per_year
    return annual / run_frequency.periods_per_year


def items_from_positions(positions: Sequence[EmployeePosition]) -> list[CompensationItem]:
    """One synthetic base-salary item per active position."""
    return [
        CompensationItem(
            source=EarningSource.POSITION,
            source_id=position.employee_position_id,
            code=BASE_SALARY_CODE,
            name=position.position_title,
            amount=to_decimal(position.compensation_amount),
            frequency=position.compensation_frequency,
            currency_id=position.currency_id,
            effective_start=position.start_date,
            effective_end=position.end_date,
            proration_method=ProrationMethod.CALENDAR_DAYS,
            is_base_salary=True,
        )
        for position in positions
        if position.is_active
    ]


def items_from_overrides(overrides: Sequence[EmployeeCompensation]) -> list[CompensationItem]:
    return [
        CompensationItem(
            source=EarningSource.OVERRIDE,
            source_id=override.employee_compensation_id,
            code=override.pay_element_code,
            name=override.pay_element_name,
            amount=to_decimal(override.amount),
            frequency=override.frequency,
            currency_id=override.currency_id,
            effective_start=override.start_date,
            effective_end=override.end_date,
            proration_method=ProrationMethod.from_code(override.proration_method),
            is_base_salary=override.is_base_salary,
        )
        for override in overrides
        if override.is_active
    ]


class CompensationAggregator:
    """Resolves one employee's earnings for a pay period."""

    def __init__(
        self,
        period_start: date,
        period_end: date,
        run_frequency: PayFrequency,
        converter: CurrencyConverter,
    ):
        self.period_start = period_start
        self.period_end = period_end
        self.run_frequency = run_frequency
        self.converter = converter

    def select_items(
        self,
        positions: Sequence[EmployeePosition],
        overrides: Sequence[EmployeeCompensation],
    ) -> list[CompensationItem]:
        """Override items replace position items entirely when any exist."""
        override_items = items_from_overrides(overrides)
        if override_items:
            return override_items
        return items_from_positions(positions)

    def resolve_item(
        self, item: CompensationItem, warnings: list[CalculationWarning]
    ) -> EarningLine:
        frequency = item.frequency
        if frequency is None:
            logger.warning(
                "No frequency on %s %s; assuming %s",
                item.source.value,
                item.source_id,
                DEFAULT_ITEM_FREQUENCY.value,
            )
            warnings.append(
                CalculationWarning(
                    code=WarningCode.DEFAULT_PAY_FREQUENCY,
                    message=f"No frequency set; {DEFAULT_ITEM_FREQUENCY.value} assumed",
                    context={"source_id": str(item.source_id), "code": item.code},
                )
            )
            frequency = DEFAULT_ITEM_FREQUENCY.value

        period_amount = normalize_to_frequency(item.amount, frequency, self.run_frequency)
        if period_amount is None:
            logger.warning(
                "Unknown frequency %r on %s %s; treating amount as per-period",
                item.frequency,
                item.source.value,
                item.source_id,
            )
            warnings.append(
                CalculationWarning(
                    code=WarningCode.UNKNOWN_FREQUENCY,
                    message=f"Unknown frequency {item.frequency!r}; amount used as-is",
                    context={"source_id": str(item.source_id), "code": item.code},
                )
            )
            period_amount = item.amount

        proration = calculate_proration_factor(
            self.period_start,
            self.period_end,
            item.effective_start,
            item.effective_end,
            item.proration_method,
        )
        prorated = apply_proration(period_amount, proration)
        conversion = self.converter.convert(prorated, item.currency_id)

        return EarningLine(
            item=item,
            period_amount=period_amount,
            proration=proration,
            conversion=conversion,
            amount=round_to_cents(conversion.local_amount),
        )

    def resolve_allowances(self, allowances: Sequence[PeriodAllowance]) -> list[AllowanceLine]:
        lines = []
        for allowance in allowances:
            conversion = self.converter.convert(to_decimal(allowance.amount), allowance.currency_id)
            lines.append(
                AllowanceLine(
                    source_id=allowance.period_allowance_id,
                    name=allowance.name,
                    amount=round_to_cents(conversion.local_amount),
                    is_taxable=allowance.is_taxable,
                    conversion=conversion,
                )
            )
        return lines

    def resolve_retro(self, adjustments: Sequence[RetroactiveAdjustment]) -> list[RetroLine]:
        return [
            RetroLine(
                source_id=adj.retroactive_adjustment_id,
                description=adj.description,
                amount=round_to_cents(to_decimal(adj.amount)),
                is_taxable=adj.is_taxable,
            )
            for adj in adjustments
        ]

    def resolve_reimbursements(self, claims: Sequence[ExpenseClaim]) -> list[ReimbursementLine]:
        lines = []
        for claim in claims:
            conversion = self.converter.convert(to_decimal(claim.amount), claim.currency_id)
            lines.append(
                ReimbursementLine(
                    source_id=claim.expense_claim_id,
                    description=claim.description,
                    amount=round_to_cents(conversion.local_amount),
                    conversion=conversion,
                )
            )
        return lines

    def aggregate(
        self,
        positions: Sequence[EmployeePosition],
        overrides: Sequence[EmployeeCompensation],
        allowances: Sequence[PeriodAllowance] = (),
        retro: Sequence[RetroactiveAdjustment] = (),
        claims: Sequence[ExpenseClaim] = (),
    ) -> EarningsResult:
        """Resolve all earning sources into an EarningsResult."""
        warnings: list[CalculationWarning] = []
        earnings = [
            self.resolve_item(item, warnings) for item in self.select_items(positions, overrides)
        ]

        for line in earnings:
            if line.excluded:
                logger.debug(
                    "Item %s (%s) has no overlap with period %s..%s; excluded",
                    line.item.source_id,
                    line.item.code,
                    self.period_start,
                    self.period_end,
                )

        return EarningsResult(
            earnings=earnings,
            allowances=self.resolve_allowances(allowances),
            retro=self.resolve_retro(retro),
            reimbursements=self.resolve_reimbursements(claims),
            warnings=warnings,
        )
