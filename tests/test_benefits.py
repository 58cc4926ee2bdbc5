"""Unit tests for benefit, savings, and period deductions."""

from decimal import Decimal
from uuid import uuid4

from gross_to_net.calculators.benefits import (
    BenefitsCalculator,
    contribution_amount,
    index_mappings,
    resolve_rule,
)
from gross_to_net.calculators.currency import CurrencyConverter, ExchangeRateTable
from gross_to_net.models import (
    BenefitEnrollment,
    BenefitPlan,
    PeriodDeduction,
    PlanPayrollMapping,
    SavingsEnrollment,
    SavingsProgram,
)

USD = uuid4()
EUR = uuid4()


def make_plan(employee_type="fixed", employee_value="100", employer_type="fixed",
              employer_value="300") -> BenefitPlan:
    return BenefitPlan(
        benefit_plan_id=uuid4(),
        company_id=uuid4(),
        code="HEALTH",
        name="Health Plan",
        plan_type="health",
        employee_contribution_type=employee_type,
        employee_contribution_value=Decimal(employee_value),
        employer_contribution_type=employer_type,
        employer_contribution_value=Decimal(employer_value),
    )


def make_benefit_enrollment(plan, **overrides) -> BenefitEnrollment:
    return BenefitEnrollment(
        benefit_enrollment_id=uuid4(),
        employee_id=uuid4(),
        benefit_plan_id=plan.benefit_plan_id,
        plan=plan,
        status="active",
        contribution_type_override=overrides.get("type_override"),
        employee_contribution_override=overrides.get("employee_override"),
        employer_contribution_override=overrides.get("employer_override"),
    )


def make_program(is_pretax=True, pretax_cap=None, employee_value="5") -> SavingsProgram:
    return SavingsProgram(
        savings_program_id=uuid4(),
        company_id=uuid4(),
        code="401K",
        name="Retirement Savings",
        is_pretax=is_pretax,
        pretax_cap=pretax_cap,
        employee_contribution_type="percentage",
        employee_contribution_value=Decimal(employee_value),
        employer_contribution_type="percentage",
        employer_contribution_value=Decimal("3"),
    )


def make_savings_enrollment(program) -> SavingsEnrollment:
    return SavingsEnrollment(
        savings_enrollment_id=uuid4(),
        employee_id=uuid4(),
        savings_program_id=program.savings_program_id,
        program=program,
        status="active",
        contribution_type_override=None,
        employee_contribution_override=None,
        employer_contribution_override=None,
    )


def make_mapping(kind, plan_id, code="PE-001", is_active=True) -> PlanPayrollMapping:
    return PlanPayrollMapping(
        plan_payroll_mapping_id=uuid4(),
        plan_kind=kind,
        plan_id=plan_id,
        pay_element_code=code,
        is_active=is_active,
    )


def make_calculator(gross="5000.00", mappings=(), rates=None) -> BenefitsCalculator:
    converter = CurrencyConverter(USD, ExchangeRateTable(rates or {}))
    return BenefitsCalculator(Decimal(gross), index_mappings(mappings), converter)


class TestContributionRules:
    """Test plan defaults and enrollment overrides."""

    def test_plan_default_rule(self):
        plan = make_plan()

        rule = resolve_rule(plan, make_benefit_enrollment(plan))

        assert rule.employee_type == "fixed"
        assert rule.employee_value == Decimal("100")
        assert rule.is_override is False

    def test_enrollment_override_wins(self):
        plan = make_plan()
        enrollment = make_benefit_enrollment(
            plan, type_override="percentage", employee_override=Decimal("2")
        )

        rule = resolve_rule(plan, enrollment)

        assert rule.employee_type == "percentage"
        assert rule.employee_value == Decimal("2")
        # Type override applies to both sides; employer keeps plan value
        assert rule.employer_type == "percentage"
        assert rule.employer_value == Decimal("300")
        assert rule.is_override is True

    def test_percentage_is_stored_as_percent(self):
        assert contribution_amount("percentage", Decimal("5"), Decimal("5000")) == Decimal("250.00")

    def test_fixed_amount_rounded(self):
        assert contribution_amount("fixed", Decimal("33.335"), Decimal("5000")) == Decimal("33.34")


class TestBenefits:
    """Test benefit plan contributions."""

    def test_mapped_plan_contributes(self):
        plan = make_plan()
        calculator = make_calculator(mappings=[make_mapping("benefit", plan.benefit_plan_id)])

        lines = calculator.calculate_benefits([make_benefit_enrollment(plan)])

        assert len(lines) == 1
        assert lines[0].employee_amount == Decimal("100.00")
        assert lines[0].employer_amount == Decimal("300.00")
        assert lines[0].pay_element_code == "PE-001"

    def test_unmapped_plan_skipped(self):
        plan = make_plan()

        assert make_calculator().calculate_benefits([make_benefit_enrollment(plan)]) == []

    def test_inactive_mapping_ignored(self):
        plan = make_plan()
        calculator = make_calculator(
            mappings=[make_mapping("benefit", plan.benefit_plan_id, is_active=False)]
        )

        assert calculator.calculate_benefits([make_benefit_enrollment(plan)]) == []

    def test_mapping_kind_must_match(self):
        plan = make_plan()
        calculator = make_calculator(mappings=[make_mapping("savings", plan.benefit_plan_id)])

        assert calculator.calculate_benefits([make_benefit_enrollment(plan)]) == []

    def test_benefits_are_not_pre_tax(self):
        plan = make_plan()
        calculator = make_calculator(mappings=[make_mapping("benefit", plan.benefit_plan_id)])

        result = calculator.calculate(benefit_enrollments=[make_benefit_enrollment(plan)])

        assert result.benefit_employee == Decimal("100.00")
        assert result.pre_tax.total == Decimal("0")


class TestSavings:
    """Test savings contributions and their pre-tax portion."""

    def test_pretax_savings(self):
        program = make_program()
        calculator = make_calculator(mappings=[make_mapping("savings", program.savings_program_id)])

        result = calculator.calculate(savings_enrollments=[make_savings_enrollment(program)])

        assert result.savings_employee == Decimal("250.00")
        assert result.savings_employer == Decimal("150.00")
        assert result.pre_tax.savings == Decimal("250.00")

    def test_pretax_cap_limits_pretax_portion(self):
        program = make_program(pretax_cap=Decimal("200.00"))
        calculator = make_calculator(mappings=[make_mapping("savings", program.savings_program_id)])

        line = calculator.calculate_savings([make_savings_enrollment(program)])[0]

        assert line.employee_amount == Decimal("250.00")
        assert line.pretax_amount == Decimal("200.00")

    def test_post_tax_savings_have_no_pretax_portion(self):
        program = make_program(is_pretax=False)
        calculator = make_calculator(mappings=[make_mapping("savings", program.savings_program_id)])

        line = calculator.calculate_savings([make_savings_enrollment(program)])[0]

        assert line.pretax_amount == Decimal("0")


class TestPeriodDeductions:
    """Test other deductions for the period."""

    def test_pretax_and_post_tax_deductions(self):
        deductions = [
            PeriodDeduction(
                period_deduction_id=uuid4(),
                name="Commuter",
                amount=Decimal("75.00"),
                currency_id=None,
                is_pretax=True,
            ),
            PeriodDeduction(
                period_deduction_id=uuid4(),
                name="Loan",
                amount=Decimal("120.00"),
                currency_id=None,
                is_pretax=False,
            ),
        ]

        result = make_calculator().calculate(deductions=deductions)

        assert result.other_deductions == Decimal("195.00")
        assert result.pre_tax.period_deductions == Decimal("75.00")

    def test_foreign_deduction_converted(self):
        deduction = PeriodDeduction(
            period_deduction_id=uuid4(),
            name="Union dues",
            amount=Decimal("10.00"),
            currency_id=EUR,
            is_pretax=False,
        )

        lines = make_calculator(rates={(EUR, USD): Decimal("1.1")}).calculate_deductions(
            [deduction]
        )

        assert lines[0].amount == Decimal("11.00")
