"""Compensation sources: positions, override items, and period inputs."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gross_to_net.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from gross_to_net.models.company import Employee


class EffectiveDatedMixin:
    """Mixin for records with an optional effective window."""

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def overlaps(self, period_start: date, period_end: date) -> bool:
        """Check if the effective window touches the given period."""
        if self.start_date is not None and self.start_date > period_end:
            return False
        if self.end_date is not None and self.end_date < period_start:
            return False
        return True


class EmployeePosition(Base, TimestampMixin, EffectiveDatedMixin):
    """Employee assignment to a position with its default compensation."""

    __tablename__ = "employee_position"

    employee_position_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    position_title: Mapped[str] = mapped_column(String, nullable=False)
    compensation_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    compensation_frequency: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="employee_position_dates_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="positions")


class EmployeeCompensation(Base, TimestampMixin, EffectiveDatedMixin):
    """Explicit compensation item overriding position defaults."""

    __tablename__ = "employee_compensation"

    employee_compensation_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_element_code: Mapped[str] = mapped_column(String, nullable=False)
    pay_element_name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    frequency: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )
    is_base_salary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proration_method: Mapped[str] = mapped_column(String, nullable=False, default="NONE")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="employee_compensation_dates_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="compensation_items")


class PeriodAllowance(Base, TimestampMixin):
    """Allowance already computed for one employee and pay period."""

    __tablename__ = "period_allowance"

    period_allowance_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("pay_period.pay_period_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PeriodDeduction(Base, TimestampMixin):
    """Other deduction for one employee and pay period (loans, union dues, etc.)."""

    __tablename__ = "period_deduction"

    period_deduction_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("pay_period.pay_period_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )
    is_pretax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class RetroactiveAdjustment(Base, TimestampMixin):
    """Retroactive pay owed to an employee, consumed by exactly one run."""

    __tablename__ = "retroactive_adjustment"

    retroactive_adjustment_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_group_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("pay_group.pay_group_id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    processed_payroll_run_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("payroll_run.payroll_run_id"), nullable=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processed')",
            name="retroactive_adjustment_status_check",
        ),
    )


class ExpenseClaim(Base, TimestampMixin):
    """Approved expense claim reimbursed through payroll."""

    __tablename__ = "expense_claim"

    expense_claim_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    pay_period_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("pay_period.pay_period_id"), nullable=True
    )
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")
    processed_payroll_run_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("payroll_run.payroll_run_id"), nullable=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('submitted', 'approved', 'reimbursed', 'rejected')",
            name="expense_claim_status_check",
        ),
    )
