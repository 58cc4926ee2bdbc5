"""Statutory deduction catalog, opening balances, and exchange-rate snapshots."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gross_to_net.models.base import Base, TimestampMixin


class StatutoryDeductionType(Base, TimestampMixin):
    """A statutory tax or social contribution for one country."""

    __tablename__ = "statutory_deduction_type"

    statutory_deduction_type_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    statutory_type: Mapped[str] = mapped_column(String, nullable=False)
    is_bracketed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="statutory_deduction_type_dates_check",
        ),
    )

    # Relationships
    bands: Mapped[list[StatutoryRateBand]] = relationship(back_populates="deduction_type")

    def is_active_on(self, as_of_date: date) -> bool:
        """Check if the deduction type is in force on a given date."""
        if self.start_date > as_of_date:
            return False
        if self.end_date is not None and self.end_date < as_of_date:
            return False
        return True


class StatutoryRateBand(Base, TimestampMixin):
    """Rate band of a statutory deduction type."""

    __tablename__ = "statutory_rate_band"

    statutory_rate_band_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    statutory_deduction_type_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey(
            "statutory_deduction_type.statutory_deduction_type_id", ondelete="CASCADE"
        ),
        nullable=False,
    )
    pay_frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="percentage")
    employee_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False, default=0)
    employer_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False, default=0)
    fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    employer_fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    per_monday_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    employer_per_monday_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True
    )
    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_wage_base_limit: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True
    )
    employer_wage_base_limit: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_method IN ('percentage', 'fixed', 'per_monday')",
            name="statutory_rate_band_method_check",
        ),
    )

    # Relationships
    deduction_type: Mapped[StatutoryDeductionType] = relationship(back_populates="bands")


class OpeningBalance(Base, TimestampMixin):
    """Year-to-date balances carried in from before the engine took over."""

    __tablename__ = "opening_balance"

    opening_balance_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    ytd_taxable_income: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    ytd_income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)
    ytd_gross_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("employee_id", "tax_year", name="opening_balance_employee_year_unique"),
    )


class ExchangeRateSnapshot(Base):
    """Exchange rate frozen for the lifetime of one payroll run."""

    __tablename__ = "exchange_rate_snapshot"

    exchange_rate_snapshot_id: Mapped[UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid4
    )
    payroll_run_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"), nullable=False
    )
    from_currency_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=False
    )
    to_currency_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=False
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "payroll_run_id",
            "from_currency_id",
            "to_currency_id",
            name="exchange_rate_snapshot_pair_unique",
        ),
        CheckConstraint("rate > 0", name="exchange_rate_snapshot_rate_positive"),
    )
