"""Statutory deductions: cumulative PAYE brackets and band-method contributions.

Bracketed types are taxed on the cumulative method. Tax owed on year-to-date
taxable income including this period, less tax already withheld this year,
floored at zero. Over a year of pay periods this reproduces the annual
liability of the bracket table regardless of how income fluctuates.

Other types match the first band for the employee's income and age and apply
one of three methods:
- percentage: rate x income, each side capped by its own wage-base limit
- fixed: flat employee/employer amounts per period
- per_monday: per-Monday amounts x the period's Monday count
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gross_to_net.calculators.money import ZERO, round_to_cents, to_decimal
from gross_to_net.calculators.types import (
    DeductionTypeRule,
    PayFrequency,
    RateBand,
    StatutoryInput,
    StatutoryItem,
    StatutoryMethod,
    StatutoryResult,
    YTDInfo,
)
from gross_to_net.models import StatutoryDeductionType, StatutoryRateBand

logger = logging.getLogger(__name__)


def _band_from_row(row: StatutoryRateBand) -> RateBand:
    return RateBand(
        min_amount=to_decimal(row.min_amount) if row.min_amount is not None else None,
        max_amount=to_decimal(row.max_amount) if row.max_amount is not None else None,
        method=StatutoryMethod(row.calculation_method),
        employee_rate=to_decimal(row.employee_rate),
        employer_rate=to_decimal(row.employer_rate),
        fixed_amount=to_decimal(row.fixed_amount),
        employer_fixed_amount=to_decimal(row.employer_fixed_amount),
        per_monday_amount=to_decimal(row.per_monday_amount),
        employer_per_monday_amount=to_decimal(row.employer_per_monday_amount),
        min_age=row.min_age,
        max_age=row.max_age,
        employee_wage_base_limit=(
            to_decimal(row.employee_wage_base_limit)
            if row.employee_wage_base_limit is not None
            else None
        ),
        employer_wage_base_limit=(
            to_decimal(row.employer_wage_base_limit)
            if row.employer_wage_base_limit is not None
            else None
        ),
        pay_frequency=row.pay_frequency,
    )


def tax_on_cumulative(income: Decimal, bands: list[RateBand]) -> Decimal:
    """Walk bracket bands in ascending order and return the unrounded tax on income."""
    if income <= ZERO:
        return ZERO

    total = ZERO
    for band in sorted(bands, key=lambda b: b.min_amount or ZERO):
        band_min = band.min_amount or ZERO
        if income < band_min:
            continue
        band_top = income if band.max_amount is None else min(income, band.max_amount)
        taxable_in_band = band_top - band_min
        if taxable_in_band > ZERO:
            total += taxable_in_band * band.employee_rate
    return total


def wage_base(income: Decimal, limit: Decimal | None, ytd_taxable: Decimal) -> Decimal:
    """Portion of this period's income still under a wage-base ceiling."""
    if limit is None:
        return income
    remaining = limit - ytd_taxable
    if remaining <= ZERO:
        return ZERO
    return min(income, remaining)


class StatutoryCatalogError(ValueError):
    """Raised when a deduction-type catalog cannot be calculated consistently."""


class StatutoryCalculator:
    """Calculates statutory deductions against a deduction-type catalog.

    At most one type may be bracketed, since year-to-date tax paid is a
    single income-tax figure.
    """

    def __init__(self, catalog: list[DeductionTypeRule]):
        bracketed = [rule.code for rule in catalog if rule.is_bracketed]
        if len(bracketed) > 1:
            raise StatutoryCatalogError(
                f"Only one cumulative income tax type is allowed, found {', '.join(bracketed)}"
            )
        self.catalog = catalog

    @classmethod
    async def load(
        cls, session: AsyncSession, country: str, as_of_date: date
    ) -> StatutoryCalculator:
        """Load the country's catalog of deduction types in force on a date."""
        result = await session.execute(
            select(StatutoryDeductionType)
            .options(selectinload(StatutoryDeductionType.bands))
            .where(
                StatutoryDeductionType.country == country,
                StatutoryDeductionType.start_date <= as_of_date,
                or_(
                    StatutoryDeductionType.end_date.is_(None),
                    StatutoryDeductionType.end_date >= as_of_date,
                ),
            )
            .order_by(StatutoryDeductionType.code)
        )
        catalog = [
            DeductionTypeRule(
                deduction_type_id=row.statutory_deduction_type_id,
                code=row.code,
                name=row.name,
                statutory_type=row.statutory_type,
                is_bracketed=row.is_bracketed,
                bands=[_band_from_row(b) for b in row.bands if b.is_active],
            )
            for row in result.scalars().unique().all()
        ]
        logger.debug("Loaded %d statutory types for %s on %s", len(catalog), country, as_of_date)
        return cls(catalog)

    @staticmethod
    def bands_for(rule: DeductionTypeRule, frequency: PayFrequency) -> list[RateBand]:
        """Bands that apply to a pay frequency (bands without one apply to all).

        Frequencies match on periods per year, so fortnightly bands serve a
        biweekly pay group. An unrecognised band frequency matches nothing.
        """
        bands = []
        for b in rule.bands:
            if b.pay_frequency is None:
                bands.append(b)
                continue
            band_frequency = PayFrequency.parse(b.pay_frequency)
            if band_frequency is not None and (
                band_frequency.periods_per_year == frequency.periods_per_year
            ):
                bands.append(b)
        return sorted(bands, key=lambda b: b.min_amount or ZERO)

    def calculate(self, inp: StatutoryInput) -> StatutoryResult:
        """Calculate every statutory type for one employee's period."""
        taxable = inp.taxable_income
        items: list[StatutoryItem] = []

        for rule in self.catalog:
            bands = self.bands_for(rule, inp.pay_frequency)
            if not bands:
                continue

            if rule.is_bracketed:
                items.append(self._cumulative_item(rule, bands, inp, taxable))
                continue

            item = self._band_item(rule, bands, inp, taxable)
            if item is not None:
                items.append(item)

        return StatutoryResult(taxable_income=taxable, items=items)

    def _cumulative_item(
        self,
        rule: DeductionTypeRule,
        bands: list[RateBand],
        inp: StatutoryInput,
        taxable: Decimal,
    ) -> StatutoryItem:
        ytd_taxable_after = inp.ytd.ytd_taxable_income + taxable
        tax_due = tax_on_cumulative(ytd_taxable_after, bands)
        owed = tax_due - inp.ytd.ytd_tax_paid
        employee_amount = round_to_cents(owed) if owed > ZERO else ZERO

        return StatutoryItem(
            deduction_type_id=rule.deduction_type_id,
            code=rule.code,
            name=rule.name,
            statutory_type=rule.statutory_type,
            method=StatutoryMethod.CUMULATIVE,
            employee_amount=employee_amount,
            employer_amount=ZERO,
            ytd_info=YTDInfo(
                ytd_taxable_before=inp.ytd.ytd_taxable_income,
                ytd_taxable_after=ytd_taxable_after,
                ytd_tax_before=inp.ytd.ytd_tax_paid,
                ytd_tax_after=inp.ytd.ytd_tax_paid + employee_amount,
            ),
        )

    def _band_item(
        self,
        rule: DeductionTypeRule,
        bands: list[RateBand],
        inp: StatutoryInput,
        taxable: Decimal,
    ) -> StatutoryItem | None:
        band = next(
            (b for b in bands if b.admits_age(inp.employee_age) and b.contains(taxable)),
            None,
        )
        if band is None:
            return None

        if band.method == StatutoryMethod.PER_MONDAY:
            employee = band.per_monday_amount * inp.monday_count
            employer = band.employer_per_monday_amount * inp.monday_count
        elif band.method == StatutoryMethod.FIXED:
            employee = band.fixed_amount
            employer = band.employer_fixed_amount
        else:
            ytd_taxable = inp.ytd.ytd_taxable_income
            employee_base = wage_base(taxable, band.employee_wage_base_limit, ytd_taxable)
            employer_base = wage_base(taxable, band.employer_wage_base_limit, ytd_taxable)
            employee = employee_base * band.employee_rate
            employer = employer_base * band.employer_rate

        return StatutoryItem(
            deduction_type_id=rule.deduction_type_id,
            code=rule.code,
            name=rule.name,
            statutory_type=rule.statutory_type,
            method=band.method,
            employee_amount=round_to_cents(employee),
            employer_amount=round_to_cents(employer),
        )
