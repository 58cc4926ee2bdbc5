"""Benefit plan, savings program, enrollment, and payroll mapping models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gross_to_net.models.base import Base, TimestampMixin
from gross_to_net.models.compensation import EffectiveDatedMixin

CONTRIBUTION_TYPES = "('fixed', 'percentage')"


class ContributionRuleMixin:
    """Default employee/employer contribution rule of a plan or program."""

    employee_contribution_type: Mapped[str] = mapped_column(
        String, nullable=False, default="fixed"
    )
    employee_contribution_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=0
    )
    employer_contribution_type: Mapped[str] = mapped_column(
        String, nullable=False, default="fixed"
    )
    employer_contribution_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=0
    )


class ContributionOverrideMixin:
    """Enrollment-level override of the plan contribution rule."""

    contribution_type_override: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_contribution_override: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True
    )
    employer_contribution_override: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True
    )


class BenefitPlan(Base, TimestampMixin, ContributionRuleMixin):
    """Benefit plan offered by a company."""

    __tablename__ = "benefit_plan"

    benefit_plan_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    plan_type: Mapped[str] = mapped_column(String, nullable=False, default="health")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="benefit_plan_company_code_unique"),
        CheckConstraint(
            f"employee_contribution_type IN {CONTRIBUTION_TYPES}",
            name="benefit_plan_employee_type_check",
        ),
        CheckConstraint(
            f"employer_contribution_type IN {CONTRIBUTION_TYPES}",
            name="benefit_plan_employer_type_check",
        ),
    )


class BenefitEnrollment(Base, TimestampMixin, EffectiveDatedMixin, ContributionOverrideMixin):
    """Employee enrollment in a benefit plan."""

    __tablename__ = "benefit_enrollment"

    benefit_enrollment_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    benefit_plan_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("benefit_plan.benefit_plan_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    # Relationships
    plan: Mapped[BenefitPlan] = relationship()


class SavingsProgram(Base, TimestampMixin, ContributionRuleMixin):
    """Savings or retirement program with an optional pre-tax portion."""

    __tablename__ = "savings_program"

    savings_program_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_pretax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pretax_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="savings_program_company_code_unique"),
    )


class SavingsEnrollment(Base, TimestampMixin, EffectiveDatedMixin, ContributionOverrideMixin):
    """Employee enrollment in a savings program."""

    __tablename__ = "savings_enrollment"

    savings_enrollment_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    savings_program_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("savings_program.savings_program_id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    # Relationships
    program: Mapped[SavingsProgram] = relationship()


class PlanPayrollMapping(Base, TimestampMixin):
    """Links a benefit plan or savings program to a payroll pay element."""

    __tablename__ = "plan_payroll_mapping"

    plan_payroll_mapping_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    plan_kind: Mapped[str] = mapped_column(String, nullable=False)
    plan_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    pay_element_code: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "plan_kind IN ('benefit', 'savings')",
            name="plan_payroll_mapping_kind_check",
        ),
    )
