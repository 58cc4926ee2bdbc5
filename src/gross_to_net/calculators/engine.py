"""Gross-to-net engine: the per-employee calculation pipeline."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gross_to_net.calculators.benefits import BenefitsCalculator, MappingIndex, index_mappings
from gross_to_net.calculators.compensation import CompensationAggregator
from gross_to_net.calculators.currency import CurrencyConverter, ExchangeRateTable
from gross_to_net.calculators.money import ZERO, to_decimal
from gross_to_net.calculators.statutory import StatutoryCalculator
from gross_to_net.calculators.types import (
    CalculationDetails,
    CalculationWarning,
    EmployeeCalculation,
    PayFrequency,
    StatutoryInput,
    StatutoryMethod,
    WarningCode,
    YTDBalances,
)
from gross_to_net.config import Settings, UnassignedPayGroupPolicy, get_settings
from gross_to_net.models import (
    BenefitEnrollment,
    Company,
    Employee,
    EmployeeCompensation,
    EmployeePayroll,
    EmployeePosition,
    ExchangeRateSnapshot,
    ExpenseClaim,
    OpeningBalance,
    PayPeriod,
    PayrollRun,
    PeriodAllowance,
    PeriodDeduction,
    PlanPayrollMapping,
    RetroactiveAdjustment,
    SavingsEnrollment,
)

logger = logging.getLogger(__name__)


class UnassignedPayGroupError(Exception):
    """Raised when an employee has no pay group and policy rejects the run."""

    def __init__(self, employee_id: UUID):
        self.employee_id = employee_id
        super().__init__(f"Employee {employee_id} has no pay group assigned")


@dataclass
class RunContext:
    """Run-wide inputs loaded once and shared by every employee."""

    payroll_run_id: UUID
    pay_group_id: UUID | None
    period: PayPeriod
    country: str
    local_currency_id: UUID | None
    rates: ExchangeRateTable
    statutory: StatutoryCalculator
    mappings: MappingIndex
    monday_count: int
    monday_count_defaulted: bool = False
    excluded_employee_ids: list[UUID] = field(default_factory=list)


class GrossToNetEngine:
    """Per-employee gross-to-net pipeline.

    Stable order per employee:
    1) Aggregate earnings (normalize, prorate, convert)
    2) Benefits, savings, and period deductions (produces pre-tax figure)
    3) Statutory deductions on taxable income against YTD balances
    4) Net pay and employer cost
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def prepare_run(self, run: PayrollRun) -> RunContext:
        """Load the run-wide context: period, rates, catalog, and mappings."""
        period = await self.session.get(PayPeriod, run.pay_period_id)
        if period is None:
            raise ValueError(f"Pay period {run.pay_period_id} not found")
        company = await self.session.get(Company, run.company_id)
        if company is None:
            raise ValueError(f"Company {run.company_id} not found")

        snapshots = await self.session.execute(
            select(ExchangeRateSnapshot).where(
                ExchangeRateSnapshot.payroll_run_id == run.payroll_run_id
            )
        )
        rates = ExchangeRateTable.from_snapshots(snapshots.scalars().all())

        mappings = await self.session.execute(
            select(PlanPayrollMapping).where(PlanPayrollMapping.is_active.is_(True))
        )

        monday_count = period.monday_count
        monday_count_defaulted = monday_count is None
        if monday_count is None:
            monday_count = self.settings.default_monday_count

        return RunContext(
            payroll_run_id=run.payroll_run_id,
            pay_group_id=run.pay_group_id,
            period=period,
            country=company.country,
            local_currency_id=run.currency_id or company.local_currency_id,
            rates=rates,
            statutory=await StatutoryCalculator.load(
                self.session, company.country, period.period_end
            ),
            mappings=index_mappings(mappings.scalars().all()),
            monday_count=monday_count,
            monday_count_defaulted=monday_count_defaulted,
        )

    def resolve_pay_frequency(
        self, employee: Employee
    ) -> tuple[PayFrequency | None, list[CalculationWarning]]:
        """Resolve the employee's pay frequency from their pay group.

        Returns (None, warnings) when the employee is excluded by policy.

        Raises:
            UnassignedPayGroupError: If the employee has no pay group and
                policy is REJECT
        """
        default = PayFrequency.parse(self.settings.default_pay_frequency) or PayFrequency.MONTHLY
        pay_group = employee.pay_group

        if pay_group is None:
            policy = self.settings.unassigned_pay_group_policy
            if policy == UnassignedPayGroupPolicy.REJECT:
                raise UnassignedPayGroupError(employee.employee_id)
            if policy == UnassignedPayGroupPolicy.EXCLUDE:
                logger.warning("Excluding employee %s: no pay group", employee.employee_id)
                return None, [
                    CalculationWarning(
                        code=WarningCode.UNASSIGNED_PAY_GROUP_EXCLUDED,
                        message="Employee has no pay group and was excluded from the run",
                        context={"employee_id": str(employee.employee_id)},
                    )
                ]
            reason = "Employee has no pay group"
        else:
            frequency = PayFrequency.parse(pay_group.pay_frequency)
            if frequency is not None:
                return frequency, []
            reason = f"Pay group {pay_group.code} has no usable pay frequency"

        logger.warning(
            "%s; using default %s for employee %s",
            reason,
            default.value,
            employee.employee_id,
        )
        return default, [
            CalculationWarning(
                code=WarningCode.DEFAULT_PAY_FREQUENCY,
                message=f"{reason}; defaulted to {default.value}",
                context={"employee_id": str(employee.employee_id)},
            )
        ]

    async def calculate_employee(
        self,
        ctx: RunContext,
        employee: Employee,
        employee_position_id: UUID | None,
    ) -> EmployeeCalculation | None:
        """Run the pipeline for one employee. Returns None if excluded by policy."""
        frequency, warnings = self.resolve_pay_frequency(employee)
        if frequency is None:
            ctx.excluded_employee_ids.append(employee.employee_id)
            return None

        period = ctx.period
        converter = CurrencyConverter(ctx.local_currency_id, ctx.rates)

        # 1) Earnings
        aggregator = CompensationAggregator(
            period.period_start, period.period_end, frequency, converter
        )
        earnings = aggregator.aggregate(
            positions=await self._get_positions(employee.employee_id),
            overrides=await self._get_overrides(employee.employee_id, period),
            allowances=await self._get_allowances(employee.employee_id, period),
            retro=await self._get_retro_adjustments(employee, ctx.payroll_run_id),
            claims=await self._get_expense_claims(employee.employee_id, period, ctx.payroll_run_id),
        )
        warnings.extend(earnings.warnings)

        # 2) Benefits and savings (pre-tax figure must exist before statutory)
        benefits = BenefitsCalculator(earnings.gross_pay, ctx.mappings, converter).calculate(
            benefit_enrollments=await self._get_benefit_enrollments(employee.employee_id, period),
            savings_enrollments=await self._get_savings_enrollments(employee.employee_id, period),
            deductions=await self._get_period_deductions(employee.employee_id, period),
        )

        # 3) Statutory
        ytd = await self._get_ytd_balances(employee.employee_id, period, ctx.payroll_run_id)
        statutory = ctx.statutory.calculate(
            StatutoryInput(
                gross_pay=earnings.gross_pay,
                non_taxable=earnings.non_taxable,
                pre_tax=benefits.pre_tax,
                ytd=ytd,
                pay_frequency=frequency,
                monday_count=ctx.monday_count,
                employee_age=employee.age_on(period.pay_date),
            )
        )

        warnings.extend(converter.drain_warnings())
        if ctx.monday_count_defaulted and any(
            item.method == StatutoryMethod.PER_MONDAY for item in statutory.items
        ):
            logger.warning(
                "Pay period %s has no Monday count; using default %d",
                period.pay_period_id,
                ctx.monday_count,
            )
            warnings.append(
                CalculationWarning(
                    code=WarningCode.DEFAULT_MONDAY_COUNT,
                    message=f"Pay period has no Monday count; defaulted to {ctx.monday_count}",
                    context={"pay_period_id": str(period.pay_period_id)},
                )
            )

        details = CalculationDetails(
            pay_frequency=frequency.value,
            earnings=earnings.earnings or None,
            allowances=earnings.allowances or None,
            retro=earnings.retro or None,
            reimbursements=earnings.reimbursements or None,
            statutory=statutory.items or None,
            benefits=benefits.benefits or None,
            savings=benefits.savings or None,
            deductions=benefits.deductions or None,
            warnings=warnings or None,
        )

        inputs_fingerprint = self._compute_inputs_fingerprint(details.to_json_dict(), ytd)
        calculation_id = self._generate_calculation_id(
            ctx.payroll_run_id,
            employee.employee_id,
            period.period_end,
            inputs_fingerprint,
        )

        return EmployeeCalculation(
            employee_id=employee.employee_id,
            employee_position_id=employee_position_id,
            calculation_id=calculation_id,
            currency_id=ctx.local_currency_id,
            earnings=earnings,
            benefits=benefits,
            statutory=statutory,
            details=details,
            inputs_fingerprint=inputs_fingerprint,
        )

    def _generate_calculation_id(
        self,
        payroll_run_id: UUID,
        employee_id: UUID,
        as_of_date: date,
        inputs_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "payroll_run_id": str(payroll_run_id),
            "employee_id": str(employee_id),
            "as_of_date": str(as_of_date),
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    def _compute_inputs_fingerprint(self, details: dict[str, Any], ytd: YTDBalances) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data = {
            "details": details,
            "ytd_taxable_income": str(ytd.ytd_taxable_income),
            "ytd_tax_paid": str(ytd.ytd_tax_paid),
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    # === Data Loading Methods ===

    @staticmethod
    def _in_window(model, period: PayPeriod):
        return (
            or_(model.start_date.is_(None), model.start_date <= period.period_end),
            or_(model.end_date.is_(None), model.end_date >= period.period_start),
        )

    async def _get_positions(self, employee_id: UUID) -> list[EmployeePosition]:
        """Get active positions; proration handles windows outside the period."""
        result = await self.session.execute(
            select(EmployeePosition)
            .where(
                EmployeePosition.employee_id == employee_id,
                EmployeePosition.is_active.is_(True),
            )
            .order_by(EmployeePosition.is_primary.desc(), EmployeePosition.start_date)
        )
        return list(result.scalars().all())

    async def _get_overrides(
        self, employee_id: UUID, period: PayPeriod
    ) -> list[EmployeeCompensation]:
        """Get active compensation overrides touching the period."""
        result = await self.session.execute(
            select(EmployeeCompensation)
            .where(
                EmployeeCompensation.employee_id == employee_id,
                EmployeeCompensation.is_active.is_(True),
                *self._in_window(EmployeeCompensation, period),
            )
            .order_by(EmployeeCompensation.pay_element_code)
        )
        return list(result.scalars().all())

    async def _get_allowances(self, employee_id: UUID, period: PayPeriod) -> list[PeriodAllowance]:
        result = await self.session.execute(
            select(PeriodAllowance).where(
                PeriodAllowance.employee_id == employee_id,
                PeriodAllowance.pay_period_id == period.pay_period_id,
            )
        )
        return list(result.scalars().all())

    async def _get_retro_adjustments(
        self, employee: Employee, payroll_run_id: UUID
    ) -> list[RetroactiveAdjustment]:
        """Get pending retro, plus retro this run already claimed on an earlier attempt."""
        result = await self.session.execute(
            select(RetroactiveAdjustment)
            .where(
                RetroactiveAdjustment.employee_id == employee.employee_id,
                or_(
                    RetroactiveAdjustment.pay_group_id.is_(None),
                    RetroactiveAdjustment.pay_group_id == employee.pay_group_id,
                ),
                or_(
                    RetroactiveAdjustment.status == "pending",
                    RetroactiveAdjustment.processed_payroll_run_id == payroll_run_id,
                ),
            )
            .order_by(RetroactiveAdjustment.created_at)
        )
        return list(result.scalars().all())

    async def _get_expense_claims(
        self, employee_id: UUID, period: PayPeriod, payroll_run_id: UUID
    ) -> list[ExpenseClaim]:
        """Get approved claims for the period, plus claims this run already reimbursed."""
        in_period = or_(
            ExpenseClaim.pay_period_id == period.pay_period_id,
            (ExpenseClaim.pay_period_id.is_(None))
            & (ExpenseClaim.claim_date <= period.period_end),
        )
        result = await self.session.execute(
            select(ExpenseClaim)
            .where(
                ExpenseClaim.employee_id == employee_id,
                or_(
                    (ExpenseClaim.status == "approved") & in_period,
                    ExpenseClaim.processed_payroll_run_id == payroll_run_id,
                ),
            )
            .order_by(ExpenseClaim.claim_date)
        )
        return list(result.scalars().all())

    async def _get_benefit_enrollments(
        self, employee_id: UUID, period: PayPeriod
    ) -> list[BenefitEnrollment]:
        result = await self.session.execute(
            select(BenefitEnrollment)
            .where(
                BenefitEnrollment.employee_id == employee_id,
                BenefitEnrollment.status == "active",
                *self._in_window(BenefitEnrollment, period),
            )
            .options(selectinload(BenefitEnrollment.plan))
        )
        return list(result.scalars().all())

    async def _get_savings_enrollments(
        self, employee_id: UUID, period: PayPeriod
    ) -> list[SavingsEnrollment]:
        result = await self.session.execute(
            select(SavingsEnrollment)
            .where(
                SavingsEnrollment.employee_id == employee_id,
                SavingsEnrollment.status == "active",
                *self._in_window(SavingsEnrollment, period),
            )
            .options(selectinload(SavingsEnrollment.program))
        )
        return list(result.scalars().all())

    async def _get_period_deductions(
        self, employee_id: UUID, period: PayPeriod
    ) -> list[PeriodDeduction]:
        result = await self.session.execute(
            select(PeriodDeduction).where(
                PeriodDeduction.employee_id == employee_id,
                PeriodDeduction.pay_period_id == period.pay_period_id,
            )
        )
        return list(result.scalars().all())

    async def _get_ytd_balances(
        self, employee_id: UUID, period: PayPeriod, payroll_run_id: UUID
    ) -> YTDBalances:
        """Opening balance for the fiscal year plus earlier paid runs of that year."""
        opening = await self.session.execute(
            select(OpeningBalance).where(
                OpeningBalance.employee_id == employee_id,
                OpeningBalance.tax_year == period.fiscal_year,
            )
        )
        balance = opening.scalar_one_or_none()

        paid = await self.session.execute(
            select(
                func.coalesce(func.sum(EmployeePayroll.taxable_income), 0),
                func.coalesce(func.sum(EmployeePayroll.income_tax), 0),
            )
            .join(PayrollRun, PayrollRun.payroll_run_id == EmployeePayroll.payroll_run_id)
            .join(PayPeriod, PayPeriod.pay_period_id == PayrollRun.pay_period_id)
            .where(
                EmployeePayroll.employee_id == employee_id,
                PayrollRun.status == "paid",
                PayrollRun.payroll_run_id != payroll_run_id,
                PayPeriod.fiscal_year == period.fiscal_year,
                PayPeriod.period_end < period.period_start,
            )
        )
        paid_taxable, paid_tax = paid.one()

        ytd_taxable = to_decimal(paid_taxable)
        ytd_tax = to_decimal(paid_tax)
        if balance is not None:
            ytd_taxable += to_decimal(balance.ytd_taxable_income)
            ytd_tax += to_decimal(balance.ytd_income_tax)

        return YTDBalances(
            ytd_taxable_income=ytd_taxable if ytd_taxable > ZERO else ZERO,
            ytd_tax_paid=ytd_tax if ytd_tax > ZERO else ZERO,
        )

