"""Benefit and savings contributions plus other period deductions.

Only enrollments whose plan has an active payroll mapping are calculated.
Enrollment-level overrides win over the plan's default contribution rule.
Percentages are stored as percents (5 means 5%) and apply to gross pay.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from gross_to_net.calculators.currency import CurrencyConverter
from gross_to_net.calculators.money import ZERO, round_to_cents, to_decimal
from gross_to_net.calculators.types import (
    BenefitsResult,
    ContributionKind,
    ContributionLine,
    ContributionRule,
    DeductionLine,
)
from gross_to_net.models import (
    BenefitEnrollment,
    PeriodDeduction,
    PlanPayrollMapping,
    SavingsEnrollment,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

MappingIndex = dict[tuple[str, UUID], str]


def index_mappings(mappings: Sequence[PlanPayrollMapping]) -> MappingIndex:
    """Index active mappings by (plan kind, plan id) -> pay element code."""
    return {(m.plan_kind, m.plan_id): m.pay_element_code for m in mappings if m.is_active}


def resolve_rule(plan, enrollment) -> ContributionRule:
    """Merge an enrollment's overrides onto its plan's default rule."""
    type_override = enrollment.contribution_type_override
    employee_override = enrollment.employee_contribution_override
    employer_override = enrollment.employer_contribution_override

    return ContributionRule(
        employee_type=type_override or plan.employee_contribution_type,
        employee_value=to_decimal(
            employee_override
            if employee_override is not None
            else plan.employee_contribution_value
        ),
        employer_type=type_override or plan.employer_contribution_type,
        employer_value=to_decimal(
            employer_override
            if employer_override is not None
            else plan.employer_contribution_value
        ),
        is_override=any(
            v is not None for v in (type_override, employee_override, employer_override)
        ),
    )


def contribution_amount(contribution_type: str, value: Decimal, gross_pay: Decimal) -> Decimal:
    """Fixed value, or gross pay x percent / 100, rounded to cents."""
    if contribution_type == "percentage":
        return round_to_cents(gross_pay * value / HUNDRED)
    return round_to_cents(value)


class BenefitsCalculator:
    """Calculates one employee's benefit, savings, and period deductions."""

    def __init__(self, gross_pay: Decimal, mappings: MappingIndex, converter: CurrencyConverter):
        self.gross_pay = gross_pay
        self.mappings = mappings
        self.converter = converter

    def _mapped_code(self, kind: ContributionKind, plan_id: UUID, name: str) -> str | None:
        code = self.mappings.get((kind.value, plan_id))
        if code is None:
            logger.debug("Skipping unmapped %s plan %s (%s)", kind.value, plan_id, name)
        return code

    def calculate_benefits(self, enrollments: Sequence[BenefitEnrollment]) -> list[ContributionLine]:
        lines = []
        for enrollment in enrollments:
            if enrollment.status != "active":
                continue
            plan = enrollment.plan
            pay_element_code = self._mapped_code(
                ContributionKind.BENEFIT, plan.benefit_plan_id, plan.name
            )
            if pay_element_code is None:
                continue

            rule = resolve_rule(plan, enrollment)
            lines.append(
                ContributionLine(
                    kind=ContributionKind.BENEFIT,
                    plan_id=plan.benefit_plan_id,
                    enrollment_id=enrollment.benefit_enrollment_id,
                    code=plan.code,
                    name=plan.name,
                    pay_element_code=pay_element_code,
                    rule=rule,
                    employee_amount=contribution_amount(
                        rule.employee_type, rule.employee_value, self.gross_pay
                    ),
                    employer_amount=contribution_amount(
                        rule.employer_type, rule.employer_value, self.gross_pay
                    ),
                )
            )
        return lines

    def calculate_savings(self, enrollments: Sequence[SavingsEnrollment]) -> list[ContributionLine]:
        lines = []
        for enrollment in enrollments:
            if enrollment.status != "active":
                continue
            program = enrollment.program
            pay_element_code = self._mapped_code(
                ContributionKind.SAVINGS, program.savings_program_id, program.name
            )
            if pay_element_code is None:
                continue

            rule = resolve_rule(program, enrollment)
            employee_amount = contribution_amount(
                rule.employee_type, rule.employee_value, self.gross_pay
            )
            pretax_amount = ZERO
            if program.is_pretax:
                pretax_amount = employee_amount
                if program.pretax_cap is not None:
                    pretax_amount = min(employee_amount, to_decimal(program.pretax_cap))

            lines.append(
                ContributionLine(
                    kind=ContributionKind.SAVINGS,
                    plan_id=program.savings_program_id,
                    enrollment_id=enrollment.savings_enrollment_id,
                    code=program.code,
                    name=program.name,
                    pay_element_code=pay_element_code,
                    rule=rule,
                    employee_amount=employee_amount,
                    employer_amount=contribution_amount(
                        rule.employer_type, rule.employer_value, self.gross_pay
                    ),
                    pretax_amount=round_to_cents(pretax_amount),
                )
            )
        return lines

    def calculate_deductions(self, deductions: Sequence[PeriodDeduction]) -> list[DeductionLine]:
        lines = []
        for deduction in deductions:
            conversion = self.converter.convert(to_decimal(deduction.amount), deduction.currency_id)
            lines.append(
                DeductionLine(
                    source_id=deduction.period_deduction_id,
                    name=deduction.name,
                    amount=round_to_cents(conversion.local_amount),
                    is_pretax=deduction.is_pretax,
                    conversion=conversion,
                )
            )
        return lines

    def calculate(
        self,
        benefit_enrollments: Sequence[BenefitEnrollment] = (),
        savings_enrollments: Sequence[SavingsEnrollment] = (),
        deductions: Sequence[PeriodDeduction] = (),
    ) -> BenefitsResult:
        return BenefitsResult(
            benefits=self.calculate_benefits(benefit_enrollments),
            savings=self.calculate_savings(savings_enrollments),
            deductions=self.calculate_deductions(deductions),
        )
