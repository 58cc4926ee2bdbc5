"""Company, currency, pay group, and employee models."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Date, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gross_to_net.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from gross_to_net.models.compensation import EmployeeCompensation, EmployeePosition


class Currency(Base):
    """ISO currency."""

    __tablename__ = "currency"

    currency_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class Company(Base, TimestampMixin):
    """Employing company."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    local_currency_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("currency.currency_id"), nullable=False
    )

    # Relationships
    local_currency: Mapped[Currency] = relationship()


class PayGroup(Base, TimestampMixin):
    """Group of employees paid on the same schedule."""

    __tablename__ = "pay_group"

    pay_group_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    pay_frequency: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="pay_group_company_code_unique"),
    )


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("company.company_id", ondelete="CASCADE"), nullable=False
    )
    pay_group_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("pay_group.pay_group_id"), nullable=True
    )
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Relationships
    pay_group: Mapped[PayGroup | None] = relationship()
    positions: Mapped[list[EmployeePosition]] = relationship(back_populates="employee")
    compensation_items: Mapped[list[EmployeeCompensation]] = relationship(
        back_populates="employee"
    )

    def age_on(self, as_of_date: date) -> int | None:
        """Age in whole years on a date, or None without a birth date."""
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        had_birthday = (as_of_date.month, as_of_date.day) >= (dob.month, dob.day)
        return as_of_date.year - dob.year - (0 if had_birthday else 1)
