"""Payroll run service - orchestrates gross-to-net calculation and the run lifecycle."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gross_to_net.calculators.engine import GrossToNetEngine
from gross_to_net.calculators.money import ZERO
from gross_to_net.calculators.types import EmployeeCalculation, RunTotals
from gross_to_net.config import Settings, get_settings
from gross_to_net.database import acquire_advisory_lock
from gross_to_net.models import (
    AuditEvent,
    Company,
    Employee,
    EmployeePayroll,
    EmployeePosition,
    ExchangeRateSnapshot,
    ExpenseClaim,
    PayPeriod,
    PayrollRun,
    RetroactiveAdjustment,
)
from gross_to_net.services.locking_service import EmployeeLockedError, EmployeeLockService
from gross_to_net.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

logger = logging.getLogger(__name__)


class PayrollRunNotFoundError(ValueError):
    """Raised when a payroll run does not exist."""

    def __init__(self, payroll_run_id: UUID):
        self.payroll_run_id = payroll_run_id
        super().__init__(f"Payroll run {payroll_run_id} not found")


class PayrollRunBusyError(Exception):
    """Raised when another session is already calculating the run."""

    def __init__(self, payroll_run_id: UUID):
        self.payroll_run_id = payroll_run_id
        super().__init__(f"Payroll run {payroll_run_id} is being calculated by another session")


class PayrollRunFailedError(Exception):
    """Raised when a calculation aborts; the run is left in failed status."""

    def __init__(self, payroll_run_id: UUID, reason: str):
        self.payroll_run_id = payroll_run_id
        self.reason = reason
        super().__init__(f"Payroll run {payroll_run_id} failed: {reason}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def build_employee_payroll(run: PayrollRun, calc: EmployeeCalculation) -> EmployeePayroll:
    """Map one employee's calculation onto its EmployeePayroll row."""
    earnings = calc.earnings
    benefits = calc.benefits
    return EmployeePayroll(
        payroll_run_id=run.payroll_run_id,
        employee_id=calc.employee_id,
        employee_position_id=calc.employee_position_id,
        pay_period_id=run.pay_period_id,
        status="calculated",
        currency_id=calc.currency_id,
        gross_pay=calc.gross_pay,
        regular_pay=earnings.regular_pay,
        other_earnings=earnings.other_earnings,
        allowance_pay=earnings.allowance_pay,
        retro_pay=earnings.retro_pay,
        reimbursement_pay=earnings.reimbursement_pay,
        taxable_income=calc.taxable_income,
        pretax_deductions=benefits.pre_tax.total,
        tax_deductions=calc.tax_deductions,
        income_tax=calc.statutory.income_tax,
        benefit_deductions=benefits.benefit_employee,
        retirement_deductions=benefits.savings_employee,
        other_deductions=benefits.other_deductions,
        total_deductions=calc.total_deductions,
        net_pay=calc.net_pay,
        employer_taxes=calc.employer_taxes,
        employer_benefits=benefits.benefit_employer,
        employer_retirement=benefits.savings_employer,
        total_employer_cost=calc.total_employer_cost,
        calculation_id=calc.calculation_id,
        calculation_details=calc.details.to_json_dict(),
    )


class PayrollRunService:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_run: Open a draft run for a pay period
    - capture_exchange_rates: Freeze the run's rate snapshot (draft only)
    - calculate_run / recalculate_run: Gross-to-net for the whole population
    - request_recalculation / approve_recalculation: Unlock an approved run
    - approve_run: calculated → approved
    - mark_paid: approved → paid, releasing employee locks
    - reopen_run: Back to draft, discarding results and releasing inputs
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.locks = EmployeeLockService(session)
        self.engine = GrossToNetEngine(session, self.settings)

    # === Queries ===

    async def get_run(self, payroll_run_id: UUID) -> PayrollRun | None:
        """Load a payroll run with its pay period."""
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.payroll_run_id == payroll_run_id)
            .options(selectinload(PayrollRun.pay_period))
        )
        return result.scalar_one_or_none()

    async def list_employee_payrolls(self, payroll_run_id: UUID) -> list[EmployeePayroll]:
        """Employee results of a run."""
        await self._require_run(payroll_run_id)
        result = await self.session.execute(
            select(EmployeePayroll)
            .where(EmployeePayroll.payroll_run_id == payroll_run_id)
            .order_by(EmployeePayroll.employee_id)
        )
        return list(result.scalars().all())

    async def _require_run(self, payroll_run_id: UUID) -> PayrollRun:
        run = await self.get_run(payroll_run_id)
        if run is None:
            raise PayrollRunNotFoundError(payroll_run_id)
        return run

    # === Lifecycle ===

    async def create_run(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        pay_group_id: UUID | None = None,
        run_type: str = "regular",
        run_number: str | None = None,
        actor_user_id: UUID | None = None,
    ) -> PayrollRun:
        """Create a draft payroll run in the company's local currency."""
        company = await self.session.get(Company, company_id)
        if company is None:
            raise ValueError(f"Company {company_id} not found")
        period = await self.session.get(PayPeriod, pay_period_id)
        if period is None or period.company_id != company_id:
            raise ValueError(f"Pay period {pay_period_id} not found for company {company_id}")

        if run_number is None:
            existing = await self.session.scalar(
                select(func.count())
                .select_from(PayrollRun)
                .where(PayrollRun.pay_period_id == pay_period_id)
            )
            run_number = f"{period.period_number}-{(existing or 0) + 1:02d}"

        run = PayrollRun(
            company_id=company_id,
            pay_group_id=pay_group_id,
            pay_period_id=pay_period_id,
            run_number=run_number,
            run_type=run_type,
            status=PayrollRunStatus.DRAFT.value,
            currency_id=company.local_currency_id,
        )
        self.session.add(run)
        await self.session.flush()

        await self._record_audit(run, "created", actor_user_id, {"run_number": run_number})
        await self.session.commit()
        logger.info("Created payroll run %s (%s)", run.payroll_run_id, run_number)
        return run

    async def capture_exchange_rates(
        self,
        payroll_run_id: UUID,
        rates: Mapping[tuple[UUID, UUID], Decimal],
        actor_user_id: UUID | None = None,
    ) -> list[ExchangeRateSnapshot]:
        """Record (from, to) -> rate snapshots for a draft run, replacing existing pairs.

        Raises:
            InvalidTransitionError: If the run has left draft
            ValueError: If a rate is not positive
        """
        run = await self._require_run(payroll_run_id)
        if not PayrollRunStateMachine.can_capture_rates(run.status):
            raise InvalidTransitionError(
                run.status, run.status, "exchange rates are frozen once the run leaves draft"
            )

        for (from_id, to_id), rate in rates.items():
            if Decimal(str(rate)) <= ZERO:
                raise ValueError(f"Exchange rate {from_id} -> {to_id} must be positive")

        result = await self.session.execute(
            select(ExchangeRateSnapshot).where(
                ExchangeRateSnapshot.payroll_run_id == payroll_run_id
            )
        )
        existing = {
            (s.from_currency_id, s.to_currency_id): s for s in result.scalars().all()
        }

        for (from_id, to_id), rate in rates.items():
            snapshot = existing.get((from_id, to_id))
            if snapshot is None:
                snapshot = ExchangeRateSnapshot(
                    payroll_run_id=payroll_run_id,
                    from_currency_id=from_id,
                    to_currency_id=to_id,
                    rate=Decimal(str(rate)),
                    captured_at=_now(),
                )
                self.session.add(snapshot)
                existing[(from_id, to_id)] = snapshot
            else:
                snapshot.rate = Decimal(str(rate))
                snapshot.captured_at = _now()

        await self._record_audit(
            run,
            "exchange_rates_captured",
            actor_user_id,
            {f"{f}:{t}": str(r) for (f, t), r in rates.items()},
        )
        await self.session.commit()
        return list(existing.values())

    async def calculate_run(
        self, payroll_run_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollRun:
        """Calculate every employee in the run as one all-or-nothing batch.

        Raises:
            PayrollRunNotFoundError: If the run does not exist
            RecalculationNotApprovedError: If the run is approved without a
                recorded recalculation approval
            InvalidTransitionError: If the run cannot be calculated from its status
            EmployeeLockedError: If employees are locked by another run
            PayrollRunBusyError: If another session is calculating the run
            PayrollRunFailedError: If the batch aborted (run is now failed)
        """
        if not await acquire_advisory_lock(self.session, str(payroll_run_id)):
            raise PayrollRunBusyError(payroll_run_id)

        run = await self._require_run(payroll_run_id)
        PayrollRunStateMachine.validate_calculation(run)

        population = await self._resolve_population(run)
        conflicts = await self.locks.find_conflicts(
            payroll_run_id, (employee.employee_id for employee, _ in population)
        )
        if conflicts:
            raise EmployeeLockedError(conflicts)

        await self._begin_calculation(run, population, actor_user_id)
        try:
            calculations, excluded = await self._calculate_population(
                run, population, actor_user_id
            )
            totals = RunTotals.fold(calculations)
            totals = replace(totals, warning_count=totals.warning_count + len(excluded))
            await self._save_results(run, calculations, totals)
            await self._record_audit(
                run,
                "calculated",
                actor_user_id,
                {
                    "employee_count": totals.employee_count,
                    "warning_count": totals.warning_count,
                    "excluded_employee_ids": [str(e) for e in excluded],
                    "total_gross_pay": str(totals.total_gross_pay),
                    "total_net_pay": str(totals.total_net_pay),
                },
            )
            await self.session.commit()
        except Exception as exc:
            await self._fail_run(run, exc, actor_user_id)
            raise PayrollRunFailedError(payroll_run_id, run.failure_reason or "") from exc

        logger.info(
            "Payroll run %s calculated: %d employee(s), gross %s, net %s, %d warning(s)",
            payroll_run_id,
            totals.employee_count,
            totals.total_gross_pay,
            totals.total_net_pay,
            totals.warning_count,
        )
        return run

    async def recalculate_run(
        self, payroll_run_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollRun:
        """Discard and rebuild the results of a calculated, approved, or failed run."""
        run = await self._require_run(payroll_run_id)
        if run.status == PayrollRunStatus.DRAFT:
            raise InvalidTransitionError(
                run.status, PayrollRunStatus.CALCULATING.value, "run has not been calculated yet"
            )
        return await self.calculate_run(payroll_run_id, actor_user_id)

    async def request_recalculation(
        self,
        payroll_run_id: UUID,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
    ) -> PayrollRun:
        """Ask a supervisor to allow recalculating an approved run."""
        run = await self._require_run(payroll_run_id)
        if run.status != PayrollRunStatus.APPROVED:
            raise InvalidTransitionError(
                run.status,
                PayrollRunStatus.CALCULATING.value,
                "recalculation requests apply to approved runs only",
            )

        run.recalculation_requested_at = _now()
        run.recalculation_requested_by = actor_user_id
        run.recalculation_approved_at = None
        run.recalculation_approved_by = None

        await self._record_audit(
            run, "recalculation_requested", actor_user_id, {"reason": reason} if reason else None
        )
        await self.session.commit()
        return run

    async def approve_recalculation(
        self, payroll_run_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollRun:
        """Record supervisor approval; the run stays approved until recalculated."""
        run = await self._require_run(payroll_run_id)
        if run.status != PayrollRunStatus.APPROVED:
            raise InvalidTransitionError(
                run.status,
                PayrollRunStatus.CALCULATING.value,
                "recalculation approval applies to approved runs only",
            )
        if run.recalculation_requested_at is None:
            raise InvalidTransitionError(
                run.status, PayrollRunStatus.CALCULATING.value, "no recalculation was requested"
            )

        run.recalculation_approved_at = _now()
        run.recalculation_approved_by = actor_user_id

        await self._record_audit(run, "recalculation_approved", actor_user_id)
        await self.session.commit()
        logger.info("Recalculation of payroll run %s approved", payroll_run_id)
        return run

    async def approve_run(
        self, payroll_run_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollRun:
        run = await self._require_run(payroll_run_id)
        await self._transition(run, PayrollRunStatus.APPROVED, actor_user_id)
        run.approved_at = _now()
        run.approved_by = actor_user_id
        run.recalculation_requested_at = None
        run.recalculation_requested_by = None
        run.recalculation_approved_at = None
        run.recalculation_approved_by = None
        await self.session.commit()
        return run

    async def mark_paid(
        self, payroll_run_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollRun:
        """Mark an approved run paid; its results become final and locks are released."""
        run = await self._require_run(payroll_run_id)
        await self._transition(run, PayrollRunStatus.PAID, actor_user_id)
        run.paid_at = _now()
        run.paid_by = actor_user_id
        await self.session.execute(
            update(EmployeePayroll)
            .where(EmployeePayroll.payroll_run_id == payroll_run_id)
            .values(status="paid")
        )
        await self.locks.unlock_run(payroll_run_id, actor_user_id)
        await self.session.commit()
        return run

    async def reopen_run(
        self,
        payroll_run_id: UUID,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
    ) -> PayrollRun:
        """Return a run to draft.

        Unlocks employees, deletes results, returns consumed retro
        adjustments and expense claims to their queues, and resets totals.
        """
        run = await self._require_run(payroll_run_id)
        if not PayrollRunStateMachine.can_reopen(run.status):
            raise InvalidTransitionError(
                run.status, PayrollRunStatus.DRAFT.value, "run cannot be reopened"
            )

        unlocked = await self.locks.unlock_run(payroll_run_id, actor_user_id)
        await self.session.execute(
            delete(EmployeePayroll).where(EmployeePayroll.payroll_run_id == payroll_run_id)
        )
        await self._release_consumed_inputs(payroll_run_id)

        self._apply_totals(run, RunTotals())
        run.reopen_count += 1
        run.calculated_at = None
        run.approved_at = None
        run.approved_by = None
        run.recalculation_requested_at = None
        run.recalculation_requested_by = None
        run.recalculation_approved_at = None
        run.recalculation_approved_by = None
        run.failure_reason = None

        await self._transition(
            run,
            PayrollRunStatus.DRAFT,
            actor_user_id,
            {"reason": reason, "employees_unlocked": unlocked},
        )
        await self.session.commit()
        logger.info("Reopened payroll run %s (reopen #%d)", payroll_run_id, run.reopen_count)
        return run

    # === Calculation internals ===

    async def _begin_calculation(
        self,
        run: PayrollRun,
        population: list[tuple[Employee, UUID]],
        actor_user_id: UUID | None,
    ) -> None:
        """Move to calculating and claim the population, committed together.

        Committing before any employee is calculated makes the locks visible
        to other runs for the whole calculation. The status change is a
        conditional update, so of two sessions racing from the same status
        only one proceeds. A lock claimed by another run in the meantime
        undoes both and raises EmployeeLockedError.
        """
        from_status = run.status
        PayrollRunStateMachine.validate_transition(from_status, PayrollRunStatus.CALCULATING)

        values: dict[str, Any] = {
            "status": PayrollRunStatus.CALCULATING.value,
            "calculation_started_at": _now(),
            "failure_reason": None,
        }
        if from_status == PayrollRunStatus.APPROVED:
            # The recorded approval is consumed by this recalculation
            values.update(
                approved_at=None,
                approved_by=None,
                recalculation_approved_at=None,
                recalculation_approved_by=None,
            )

        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.payroll_run_id == run.payroll_run_id,
                PayrollRun.status == from_status,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise PayrollRunBusyError(run.payroll_run_id)

        await self.session.refresh(run)
        employee_ids = [employee.employee_id for employee, _ in population]
        try:
            await self.locks.lock_employees(
                run.payroll_run_id,
                employee_ids,
                pay_group_id=run.pay_group_id,
                locked_by=actor_user_id,
            )
            await self._record_audit(
                run,
                f"status_change:{from_status}:{PayrollRunStatus.CALCULATING.value}",
                actor_user_id,
            )
            await self.session.commit()
        except EmployeeLockedError:
            await self.session.rollback()
            await self.session.refresh(run)
            raise
        except IntegrityError as exc:
            # Another run committed a claim on one of these employees first
            await self.session.rollback()
            await self.session.refresh(run)
            conflicts = await self.locks.find_conflicts(run.payroll_run_id, employee_ids)
            raise EmployeeLockedError(conflicts) from exc
        logger.info(
            "Payroll run %s: %s -> %s",
            run.payroll_run_id,
            from_status,
            PayrollRunStatus.CALCULATING.value,
        )

    async def _resolve_population(self, run: PayrollRun) -> list[tuple[Employee, UUID]]:
        """Employees with an active position, one row per employee.

        Scoped to the run's pay group when it has one, else the whole company.
        The primary (then earliest) position represents the employee.
        """
        stmt = (
            select(Employee, EmployeePosition.employee_position_id)
            .join(EmployeePosition, EmployeePosition.employee_id == Employee.employee_id)
            .where(
                Employee.company_id == run.company_id,
                EmployeePosition.is_active.is_(True),
            )
            .options(selectinload(Employee.pay_group))
            .order_by(
                Employee.full_name,
                Employee.employee_id,
                EmployeePosition.is_primary.desc(),
                EmployeePosition.start_date,
            )
        )
        if run.pay_group_id is not None:
            stmt = stmt.where(Employee.pay_group_id == run.pay_group_id)

        result = await self.session.execute(stmt)
        population: dict[UUID, tuple[Employee, UUID]] = {}
        for employee, position_id in result.all():
            population.setdefault(employee.employee_id, (employee, position_id))
        return list(population.values())

    async def _calculate_population(
        self,
        run: PayrollRun,
        population: list[tuple[Employee, UUID]],
        actor_user_id: UUID | None,
    ) -> tuple[list[EmployeeCalculation], list[UUID]]:
        ctx = await self.engine.prepare_run(run)
        calculations: list[EmployeeCalculation] = []
        for employee, position_id in population:
            calc = await self.engine.calculate_employee(ctx, employee, position_id)
            if calc is not None:
                calculations.append(calc)

        for employee_id in ctx.excluded_employee_ids:
            await self.locks.unlock_employee(run.payroll_run_id, employee_id, actor_user_id)
        return calculations, ctx.excluded_employee_ids

    async def _save_results(
        self,
        run: PayrollRun,
        calculations: list[EmployeeCalculation],
        totals: RunTotals,
    ) -> None:
        """Replace the run's results and claim consumed inputs in one transaction."""
        await self.session.execute(
            delete(EmployeePayroll).where(EmployeePayroll.payroll_run_id == run.payroll_run_id)
        )
        for calc in calculations:
            self.session.add(build_employee_payroll(run, calc))

        await self._release_consumed_inputs(run.payroll_run_id)
        now = _now()
        retro_ids = [rid for calc in calculations for rid in calc.consumed_retro_ids]
        if retro_ids:
            await self.session.execute(
                update(RetroactiveAdjustment)
                .where(RetroactiveAdjustment.retroactive_adjustment_id.in_(retro_ids))
                .values(
                    status="processed",
                    processed_payroll_run_id=run.payroll_run_id,
                    processed_at=now,
                )
            )
        claim_ids = [cid for calc in calculations for cid in calc.consumed_expense_claim_ids]
        if claim_ids:
            await self.session.execute(
                update(ExpenseClaim)
                .where(ExpenseClaim.expense_claim_id.in_(claim_ids))
                .values(
                    status="reimbursed",
                    processed_payroll_run_id=run.payroll_run_id,
                    processed_at=now,
                )
            )

        self._apply_totals(run, totals)
        await self._transition(run, PayrollRunStatus.CALCULATED)
        run.calculated_at = now
        await self.session.flush()

    async def _release_consumed_inputs(self, payroll_run_id: UUID) -> None:
        """Return retro and expense claims consumed by a run to their queues."""
        await self.session.execute(
            update(RetroactiveAdjustment)
            .where(RetroactiveAdjustment.processed_payroll_run_id == payroll_run_id)
            .values(status="pending", processed_payroll_run_id=None, processed_at=None)
        )
        await self.session.execute(
            update(ExpenseClaim)
            .where(ExpenseClaim.processed_payroll_run_id == payroll_run_id)
            .values(status="approved", processed_payroll_run_id=None, processed_at=None)
        )

    async def _fail_run(
        self, run: PayrollRun, exc: Exception, actor_user_id: UUID | None
    ) -> None:
        """Roll back the batch and record the run as failed.

        A failed run holds no results, consumed inputs, or employee locks, so
        a retry starts from the same state as a first calculation.
        """
        logger.exception("Payroll run %s failed during calculation", run.payroll_run_id)
        await self.session.rollback()
        await self.session.refresh(run)

        await self.session.execute(
            delete(EmployeePayroll).where(EmployeePayroll.payroll_run_id == run.payroll_run_id)
        )
        await self._release_consumed_inputs(run.payroll_run_id)
        await self.locks.unlock_run(run.payroll_run_id, actor_user_id)
        self._apply_totals(run, RunTotals())
        run.calculated_at = None

        from_status = run.status
        run.status = PayrollRunStatus.FAILED.value
        run.failure_reason = (str(exc) or type(exc).__name__)[:2000]
        await self._record_audit(
            run,
            f"status_change:{from_status}:{PayrollRunStatus.FAILED.value}",
            actor_user_id,
            {"error": type(exc).__name__, "reason": run.failure_reason},
        )
        await self.session.commit()

    @staticmethod
    def _apply_totals(run: PayrollRun, totals: RunTotals) -> None:
        run.total_gross_pay = totals.total_gross_pay
        run.total_net_pay = totals.total_net_pay
        run.total_deductions = totals.total_deductions
        run.total_taxes = totals.total_taxes
        run.total_employer_taxes = totals.total_employer_taxes
        run.total_employer_contributions = totals.total_employer_contributions
        run.total_employer_cost = totals.total_employer_cost
        run.employee_count = totals.employee_count
        run.warning_count = totals.warning_count

    # === Transitions & audit ===

    async def _transition(
        self,
        run: PayrollRun,
        to_status: PayrollRunStatus,
        actor_user_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        from_status = run.status
        PayrollRunStateMachine.validate_transition(from_status, to_status)
        run.status = to_status.value
        await self._record_audit(
            run, f"status_change:{from_status}:{to_status.value}", actor_user_id, details
        )
        logger.info(
            "Payroll run %s: %s -> %s", run.payroll_run_id, from_status, to_status.value
        )

    async def _record_audit(
        self,
        run: PayrollRun,
        action: str,
        actor_user_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit event for a payroll run action."""
        self.session.add(
            AuditEvent(
                actor_user_id=actor_user_id,
                entity_type="payroll_run",
                entity_id=run.payroll_run_id,
                action=action,
                after_json=details,
            )
        )
