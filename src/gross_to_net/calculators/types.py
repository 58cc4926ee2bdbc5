"""Type definitions for the gross-to-net calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from gross_to_net.calculators.money import ZERO, sum_amounts


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


# ===== Warnings =====


class WarningCode(str, Enum):
    """Non-fatal data-quality signals raised during calculation."""

    MISSING_EXCHANGE_RATE = "MISSING_EXCHANGE_RATE"
    DEFAULT_PAY_FREQUENCY = "DEFAULT_PAY_FREQUENCY"
    UNKNOWN_FREQUENCY = "UNKNOWN_FREQUENCY"
    DEFAULT_MONDAY_COUNT = "DEFAULT_MONDAY_COUNT"
    UNASSIGNED_PAY_GROUP_EXCLUDED = "UNASSIGNED_PAY_GROUP_EXCLUDED"


@dataclass(frozen=True)
class CalculationWarning:
    """A configuration fallback or lookup miss that needs audit review."""

    code: WarningCode
    message: str
    context: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "context": self.context}


# ===== Frequencies =====


class PayFrequency(str, Enum):
    """Pay and compensation frequencies."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    FORTNIGHTLY = "fortnightly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]

    @classmethod
    def parse(cls, value: str | None) -> PayFrequency | None:
        """Parse a stored frequency code, accepting common spellings."""
        if value is None:
            return None
        normalized = value.strip().lower().replace("-", "_")
        normalized = _FREQUENCY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


_PERIODS_PER_YEAR = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.FORTNIGHTLY: 26,
    PayFrequency.SEMIMONTHLY: 24,
    PayFrequency.MONTHLY: 12,
    PayFrequency.QUARTERLY: 4,
    PayFrequency.ANNUAL: 1,
}

_FREQUENCY_ALIASES = {
    "bi_weekly": "biweekly",
    "semi_monthly": "semimonthly",
    "annually": "annual",
    "yearly": "annual",
}


# ===== Proration & Currency =====


class ProrationMethod(str, Enum):
    """Proration method codes."""

    NONE = "NONE"
    CALENDAR_DAYS = "CALENDAR_DAYS"

    @classmethod
    def from_code(cls, code: str | None) -> ProrationMethod:
        """Parse a stored method code; unknown or empty codes mean no proration."""
        if not code:
            return cls.NONE
        try:
            return cls(code.strip().upper())
        except ValueError:
            return cls.NONE


@dataclass(frozen=True)
class ProrationResult:
    """Share of the pay period covered by an effective window."""

    factor: Decimal
    is_prorated: bool
    days_worked: int
    total_days: int
    method: ProrationMethod

    def to_dict(self) -> dict[str, Any]:
        return {
            "factor": str(self.factor),
            "is_prorated": self.is_prorated,
            "days_worked": self.days_worked,
            "total_days": self.total_days,
            "method": self.method.value,
        }


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of converting an amount to the run's local currency.

    ``missing_rate`` separates a pass-through caused by an absent snapshot
    rate from an intentional same-currency pass-through.
    """

    local_amount: Decimal
    exchange_rate_used: Decimal | None
    was_converted: bool
    original_amount: Decimal
    original_currency_id: UUID | None
    missing_rate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_amount": str(self.original_amount),
            "original_currency_id": _str(self.original_currency_id),
            "exchange_rate_used": _str(self.exchange_rate_used),
            "was_converted": self.was_converted,
            "missing_rate": self.missing_rate,
        }


# ===== Earnings =====


class EarningSource(str, Enum):
    """Where a compensation item came from."""

    POSITION = "position"
    OVERRIDE = "override"


@dataclass(frozen=True)
class CompensationItem:
    """A priced earning source with its own window, frequency, and currency."""

    source: EarningSource
    source_id: UUID
    code: str
    name: str
    amount: Decimal
    frequency: str
    currency_id: UUID | None
    effective_start: date | None
    effective_end: date | None
    proration_method: ProrationMethod
    is_base_salary: bool


@dataclass(frozen=True)
class EarningLine:
    """A compensation item resolved to this period's local amount."""

    item: CompensationItem
    period_amount: Decimal  # Normalized to run frequency, before proration
    proration: ProrationResult
    conversion: ConversionResult
    amount: Decimal  # Final, rounded, local

    @property
    def excluded(self) -> bool:
        """Items with no overlap contribute nothing this period."""
        return self.proration.factor == ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.item.source.value,
            "source_id": str(self.item.source_id),
            "code": self.item.code,
            "name": self.item.name,
            "frequency": self.item.frequency,
            "is_base_salary": self.item.is_base_salary,
            "period_amount": str(self.period_amount),
            "proration": self.proration.to_dict(),
            "conversion": self.conversion.to_dict(),
            "amount": str(self.amount),
            "excluded": self.excluded,
        }


@dataclass(frozen=True)
class AllowanceLine:
    source_id: UUID
    name: str
    amount: Decimal
    is_taxable: bool
    conversion: ConversionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": str(self.source_id),
            "name": self.name,
            "amount": str(self.amount),
            "is_taxable": self.is_taxable,
            "conversion": self.conversion.to_dict(),
        }


@dataclass(frozen=True)
class RetroLine:
    source_id: UUID
    description: str
    amount: Decimal
    is_taxable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": str(self.source_id),
            "description": self.description,
            "amount": str(self.amount),
            "is_taxable": self.is_taxable,
        }


@dataclass(frozen=True)
class ReimbursementLine:
    """Expense reimbursement; never taxable."""

    source_id: UUID
    description: str
    amount: Decimal
    conversion: ConversionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": str(self.source_id),
            "description": self.description,
            "amount": str(self.amount),
            "conversion": self.conversion.to_dict(),
        }


@dataclass(frozen=True)
class EarningsResult:
    """All earnings of one employee for the period."""

    earnings: list[EarningLine]
    allowances: list[AllowanceLine]
    retro: list[RetroLine]
    reimbursements: list[ReimbursementLine]
    warnings: list[CalculationWarning]

    @property
    def regular_pay(self) -> Decimal:
        return sum_amounts(e.amount for e in self.earnings if e.item.is_base_salary)

    @property
    def other_earnings(self) -> Decimal:
        return sum_amounts(e.amount for e in self.earnings if not e.item.is_base_salary)

    @property
    def allowance_pay(self) -> Decimal:
        return sum_amounts(a.amount for a in self.allowances)

    @property
    def retro_pay(self) -> Decimal:
        return sum_amounts(r.amount for r in self.retro)

    @property
    def reimbursement_pay(self) -> Decimal:
        return sum_amounts(r.amount for r in self.reimbursements)

    @property
    def gross_pay(self) -> Decimal:
        return (
            self.regular_pay
            + self.other_earnings
            + self.allowance_pay
            + self.retro_pay
            + self.reimbursement_pay
        )

    @property
    def non_taxable(self) -> Decimal:
        """Earnings excluded from taxable income."""
        return (
            sum_amounts(a.amount for a in self.allowances if not a.is_taxable)
            + sum_amounts(r.amount for r in self.retro if not r.is_taxable)
            + self.reimbursement_pay
        )


# ===== Benefits, Savings, Other Deductions =====


class ContributionKind(str, Enum):
    BENEFIT = "benefit"
    SAVINGS = "savings"


@dataclass(frozen=True)
class ContributionRule:
    """Resolved contribution rule (enrollment override or plan default)."""

    employee_type: str
    employee_value: Decimal
    employer_type: str
    employer_value: Decimal
    is_override: bool = False


@dataclass(frozen=True)
class ContributionLine:
    kind: ContributionKind
    plan_id: UUID
    enrollment_id: UUID
    code: str
    name: str
    pay_element_code: str
    rule: ContributionRule
    employee_amount: Decimal
    employer_amount: Decimal
    pretax_amount: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "plan_id": str(self.plan_id),
            "enrollment_id": str(self.enrollment_id),
            "code": self.code,
            "name": self.name,
            "pay_element_code": self.pay_element_code,
            "employee_contribution_type": self.rule.employee_type,
            "employer_contribution_type": self.rule.employer_type,
            "is_override": self.rule.is_override,
            "employee_amount": str(self.employee_amount),
            "employer_amount": str(self.employer_amount),
            "pretax_amount": str(self.pretax_amount),
        }


@dataclass(frozen=True)
class DeductionLine:
    """Other period deduction (loan repayment, union dues, ...)."""

    source_id: UUID
    name: str
    amount: Decimal
    is_pretax: bool
    conversion: ConversionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": str(self.source_id),
            "name": self.name,
            "amount": str(self.amount),
            "is_pretax": self.is_pretax,
            "conversion": self.conversion.to_dict(),
        }


@dataclass(frozen=True)
class PreTaxDeductions:
    """Resolved pre-tax figure that must exist before statutory calculation."""

    savings: Decimal = ZERO
    period_deductions: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.savings + self.period_deductions


@dataclass(frozen=True)
class BenefitsResult:
    benefits: list[ContributionLine]
    savings: list[ContributionLine]
    deductions: list[DeductionLine]

    @property
    def benefit_employee(self) -> Decimal:
        return sum_amounts(b.employee_amount for b in self.benefits)

    @property
    def benefit_employer(self) -> Decimal:
        return sum_amounts(b.employer_amount for b in self.benefits)

    @property
    def savings_employee(self) -> Decimal:
        return sum_amounts(s.employee_amount for s in self.savings)

    @property
    def savings_employer(self) -> Decimal:
        return sum_amounts(s.employer_amount for s in self.savings)

    @property
    def other_deductions(self) -> Decimal:
        return sum_amounts(d.amount for d in self.deductions)

    @property
    def pre_tax(self) -> PreTaxDeductions:
        return PreTaxDeductions(
            savings=sum_amounts(s.pretax_amount for s in self.savings),
            period_deductions=sum_amounts(d.amount for d in self.deductions if d.is_pretax),
        )


# ===== Statutory =====


class StatutoryMethod(str, Enum):
    CUMULATIVE = "cumulative"
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    PER_MONDAY = "per_monday"


@dataclass(frozen=True)
class YTDBalances:
    """Year-to-date position before this calculation."""

    ytd_taxable_income: Decimal = ZERO
    ytd_tax_paid: Decimal = ZERO


@dataclass(frozen=True)
class RateBand:
    """Rate band as seen by the statutory calculator (rates are fractions)."""

    min_amount: Decimal | None
    max_amount: Decimal | None
    method: StatutoryMethod
    employee_rate: Decimal = ZERO
    employer_rate: Decimal = ZERO
    fixed_amount: Decimal = ZERO
    employer_fixed_amount: Decimal = ZERO
    per_monday_amount: Decimal = ZERO
    employer_per_monday_amount: Decimal = ZERO
    min_age: int | None = None
    max_age: int | None = None
    employee_wage_base_limit: Decimal | None = None
    employer_wage_base_limit: Decimal | None = None
    pay_frequency: str | None = None

    def contains(self, amount: Decimal) -> bool:
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True

    def admits_age(self, age: int | None) -> bool:
        if age is None:
            return True
        if self.min_age is not None and age < self.min_age:
            return False
        if self.max_age is not None and age > self.max_age:
            return False
        return True


@dataclass(frozen=True)
class DeductionTypeRule:
    """A statutory deduction type with its rate bands."""

    deduction_type_id: UUID
    code: str
    name: str
    statutory_type: str
    is_bracketed: bool
    bands: list[RateBand]


@dataclass(frozen=True)
class StatutoryInput:
    """Everything the statutory calculator needs for one employee.

    ``pre_tax`` is required, so statutory work cannot start before benefits
    and savings have produced their pre-tax figure.
    """

    gross_pay: Decimal
    non_taxable: Decimal
    pre_tax: PreTaxDeductions
    ytd: YTDBalances
    pay_frequency: PayFrequency
    monday_count: int
    employee_age: int | None = None

    @property
    def taxable_income(self) -> Decimal:
        taxable = self.gross_pay - self.non_taxable - self.pre_tax.total
        return taxable if taxable > ZERO else ZERO


@dataclass(frozen=True)
class YTDInfo:
    ytd_taxable_before: Decimal
    ytd_taxable_after: Decimal
    ytd_tax_before: Decimal
    ytd_tax_after: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "ytd_taxable_before": str(self.ytd_taxable_before),
            "ytd_taxable_after": str(self.ytd_taxable_after),
            "ytd_tax_before": str(self.ytd_tax_before),
            "ytd_tax_after": str(self.ytd_tax_after),
        }


@dataclass(frozen=True)
class StatutoryItem:
    deduction_type_id: UUID
    code: str
    name: str
    statutory_type: str
    method: StatutoryMethod
    employee_amount: Decimal
    employer_amount: Decimal
    ytd_info: YTDInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "deduction_type_id": str(self.deduction_type_id),
            "code": self.code,
            "name": self.name,
            "statutory_type": self.statutory_type,
            "method": self.method.value,
            "employee_amount": str(self.employee_amount),
            "employer_amount": str(self.employer_amount),
        }
        if self.ytd_info is not None:
            data["ytd_info"] = self.ytd_info.to_dict()
        return data


@dataclass(frozen=True)
class StatutoryResult:
    taxable_income: Decimal
    items: list[StatutoryItem]

    @property
    def total_employee_deductions(self) -> Decimal:
        return sum_amounts(i.employee_amount for i in self.items)

    @property
    def total_employer_deductions(self) -> Decimal:
        return sum_amounts(i.employer_amount for i in self.items)

    @property
    def income_tax(self) -> Decimal:
        """Employee tax from cumulative (bracketed) types; feeds YTD tax paid."""
        return sum_amounts(
            i.employee_amount for i in self.items if i.method == StatutoryMethod.CUMULATIVE
        )


# ===== Results =====


@dataclass(frozen=True)
class CalculationDetails:
    """Audit breakdown; each section is None when it does not apply."""

    pay_frequency: str
    earnings: list[EarningLine] | None = None
    allowances: list[AllowanceLine] | None = None
    retro: list[RetroLine] | None = None
    reimbursements: list[ReimbursementLine] | None = None
    statutory: list[StatutoryItem] | None = None
    benefits: list[ContributionLine] | None = None
    savings: list[ContributionLine] | None = None
    deductions: list[DeductionLine] | None = None
    warnings: list[CalculationWarning] | None = None

    def to_json_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"pay_frequency": self.pay_frequency}
        for name in (
            "earnings",
            "allowances",
            "retro",
            "reimbursements",
            "statutory",
            "benefits",
            "savings",
            "deductions",
            "warnings",
        ):
            section = getattr(self, name)
            if section:
                data[name] = [entry.to_dict() for entry in section]
        return data


@dataclass(frozen=True)
class EmployeeCalculation:
    """Gross-to-net result for one employee, ready to persist."""

    employee_id: UUID
    employee_position_id: UUID | None
    calculation_id: UUID
    currency_id: UUID | None
    earnings: EarningsResult
    benefits: BenefitsResult
    statutory: StatutoryResult
    details: CalculationDetails
    inputs_fingerprint: str

    @property
    def gross_pay(self) -> Decimal:
        return self.earnings.gross_pay

    @property
    def taxable_income(self) -> Decimal:
        return self.statutory.taxable_income

    @property
    def tax_deductions(self) -> Decimal:
        return self.statutory.total_employee_deductions

    @property
    def total_deductions(self) -> Decimal:
        return (
            self.tax_deductions
            + self.benefits.benefit_employee
            + self.benefits.savings_employee
            + self.benefits.other_deductions
        )

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions

    @property
    def employer_taxes(self) -> Decimal:
        return self.statutory.total_employer_deductions

    @property
    def total_employer_cost(self) -> Decimal:
        return (
            self.gross_pay
            + self.employer_taxes
            + self.benefits.benefit_employer
            + self.benefits.savings_employer
        )

    @property
    def warnings(self) -> list[CalculationWarning]:
        return list(self.details.warnings or [])

    @property
    def consumed_retro_ids(self) -> list[UUID]:
        return [r.source_id for r in self.earnings.retro]

    @property
    def consumed_expense_claim_ids(self) -> list[UUID]:
        return [r.source_id for r in self.earnings.reimbursements]


@dataclass(frozen=True)
class RunTotals:
    """Aggregate totals of a payroll run."""

    total_gross_pay: Decimal = ZERO
    total_net_pay: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_taxes: Decimal = ZERO
    total_employer_taxes: Decimal = ZERO
    total_employer_contributions: Decimal = ZERO
    total_employer_cost: Decimal = ZERO
    employee_count: int = 0
    warning_count: int = 0

    def add(self, calc: EmployeeCalculation) -> RunTotals:
        """Return new totals including one employee result."""
        return RunTotals(
            total_gross_pay=self.total_gross_pay + calc.gross_pay,
            total_net_pay=self.total_net_pay + calc.net_pay,
            total_deductions=self.total_deductions + calc.total_deductions,
            total_taxes=self.total_taxes + calc.tax_deductions,
            total_employer_taxes=self.total_employer_taxes + calc.employer_taxes,
            total_employer_contributions=(
                self.total_employer_contributions
                + calc.benefits.benefit_employer
                + calc.benefits.savings_employer
            ),
            total_employer_cost=self.total_employer_cost + calc.total_employer_cost,
            employee_count=self.employee_count + 1,
            warning_count=self.warning_count + len(calc.warnings),
        )

    @classmethod
    def fold(cls, calculations: list[EmployeeCalculation]) -> RunTotals:
        totals = cls()
        for calc in calculations:
            totals = totals.add(calc)
        return totals
