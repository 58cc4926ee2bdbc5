"""Pay period, payroll run, employee payroll, lock, and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gross_to_net.models.base import Base, JSONType, TimestampMixin
from gross_to_net.models.company import Company, PayGroup


# ===== Pay Periods =====


class PayPeriod(Base, TimestampMixin):
    """Pay period window. Owned by scheduling and read-only to the engine."""

    __tablename__ = "pay_period"

    pay_period_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    period_number: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    monday_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")

    __table_args__ = (
        CheckConstraint("period_end >= period_start", name="pay_period_dates_check"),
        CheckConstraint(
            "status IN ('open', 'processing', 'approved', 'paid', 'closed')",
            name="pay_period_status_check",
        ),
    )


# ===== Payroll Run & Results =====


class PayrollRun(Base, TimestampMixin):
    """One batch calculation over a pay period for a population."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    pay_group_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("pay_group.pay_group_id"), nullable=True
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("pay_period.pay_period_id"), nullable=False
    )
    run_number: Mapped[str] = mapped_column(String, nullable=False)
    run_type: Mapped[str] = mapped_column(String, nullable=False, default="regular")
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )

    # Aggregate totals
    total_gross_pay: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False, default=0)
    total_net_pay: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False, default=0)
    total_taxes: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False, default=0)
    total_employer_taxes: Mapped[Decimal] = mapped_column(
        Numeric(16, 4), nullable=False, default=0
    )
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(16, 4), nullable=False, default=0
    )
    total_employer_cost: Mapped[Decimal] = mapped_column(
        Numeric(16, 4), nullable=False, default=0
    )
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    calculation_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    recalculation_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    recalculation_requested_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    recalculation_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    recalculation_approved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "run_type IN ('regular', 'supplemental', 'bonus', 'correction', 'off_cycle')",
            name="payroll_run_type_check",
        ),
        CheckConstraint(
            "status IN ('draft', 'calculating', 'calculated', 'approved', 'paid', 'failed')",
            name="payroll_run_status_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship()
    pay_group: Mapped[PayGroup | None] = relationship()
    pay_period: Mapped[PayPeriod] = relationship()
    employee_payrolls: Mapped[list[EmployeePayroll]] = relationship(
        back_populates="payroll_run"
    )

    @property
    def has_recalculation_approval(self) -> bool:
        """Whether a supervisor approved recalculating this run."""
        return self.recalculation_approved_at is not None


class EmployeePayroll(Base, TimestampMixin):
    """Gross-to-net result for one employee in one payroll run."""

    __tablename__ = "employee_payroll"

    employee_payroll_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    employee_position_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("employee_position.employee_position_id"), nullable=True
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("pay_period.pay_period_id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="calculated")
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )

    # Earnings
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    regular_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    other_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    allowance_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    retro_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    reimbursement_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    taxable_income: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)

    # Deductions
    pretax_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    tax_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    benefit_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    retirement_deductions: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=0
    )
    other_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)

    # Employer costs
    employer_taxes: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    employer_benefits: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    employer_retirement: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    total_employer_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)

    calculation_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    calculation_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="employee_payroll_run_employee_unique"),
        CheckConstraint(
            "status IN ('calculated', 'approved', 'paid', 'void')",
            name="employee_payroll_status_check",
        ),
    )

    # Relationships
    payroll_run: Mapped[PayrollRun] = relationship(back_populates="employee_payrolls")


class EmployeeLock(Base):
    """Claim on an employee's compensation data while a run processes them."""

    __tablename__ = "employee_lock"

    employee_lock_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_group_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    lock_reason: Mapped[str] = mapped_column(String, nullable=False, default="payroll_processing")
    locked_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    unlocked_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="employee_lock_run_employee_unique"),
        Index(
            "employee_lock_one_held_per_employee",
            "employee_id",
            unique=True,
            postgresql_where=text("unlocked_at IS NULL"),
            sqlite_where=text("unlocked_at IS NULL"),
        ),
    )

    @property
    def is_held(self) -> bool:
        """Whether the lock is still in force."""
        return self.unlocked_at is None


# ===== Audit =====


class AuditEvent(Base, TimestampMixin):
    """Audit trail of payroll run actions."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    actor_user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
