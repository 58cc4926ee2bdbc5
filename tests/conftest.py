"""Pytest fixtures for gross-to-net engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gross_to_net.models import (
    Base,
    Company,
    Currency,
    Employee,
    EmployeePosition,
    PayGroup,
    PayPeriod,
    StatutoryDeductionType,
    StatutoryRateBand,
)
from gross_to_net.services import PayrollRunService

# In-memory SQLite shared by every session of a test
# For advisory locks and JSONB, point at a Postgres database instead
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Create a fresh database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
async def currencies(session: AsyncSession) -> dict[str, Currency]:
    """USD (local) and EUR."""
    usd = Currency(code="USD", name="US Dollar")
    eur = Currency(code="EUR", name="Euro")
    session.add_all([usd, eur])
    await session.flush()
    return {"USD": usd, "EUR": eur}


@pytest.fixture
async def company(session: AsyncSession, currencies: dict[str, Currency]) -> Company:
    company = Company(
        name="Acme Payroll Co",
        country="US",
        local_currency_id=currencies["USD"].currency_id,
    )
    session.add(company)
    await session.flush()
    return company


@pytest.fixture
async def pay_group(session: AsyncSession, company: Company) -> PayGroup:
    group = PayGroup(
        company_id=company.company_id,
        code="MONTHLY",
        name="Monthly Salaried",
        pay_frequency="monthly",
    )
    session.add(group)
    await session.flush()
    return group


@pytest.fixture
async def pay_period(session: AsyncSession, company: Company) -> PayPeriod:
    """June 2025: 30 days, five Mondays."""
    period = PayPeriod(
        company_id=company.company_id,
        period_number="2025-06",
        period_start=date(2025, 6, 1),
        period_end=date(2025, 6, 30),
        pay_date=date(2025, 6, 30),
        monday_count=5,
        fiscal_year=2025,
        fiscal_month=6,
        status="open",
    )
    session.add(period)
    await session.flush()
    return period


@pytest.fixture
async def flat_income_tax(session: AsyncSession) -> StatutoryDeductionType:
    """Unbracketed 10% employee tax on all taxable income."""
    tax = StatutoryDeductionType(
        country="US",
        code="INCOME_FLAT",
        name="Flat Income Tax",
        statutory_type="income_tax",
        is_bracketed=False,
        start_date=date(2025, 1, 1),
    )
    tax.bands = [
        StatutoryRateBand(
            calculation_method="percentage",
            employee_rate=Decimal("0.10"),
            employer_rate=Decimal("0"),
            is_active=True,
        )
    ]
    session.add(tax)
    await session.flush()
    return tax


@pytest.fixture
def make_employee(session: AsyncSession, company: Company, pay_group: PayGroup):
    """Factory for an employee with one active position."""

    async def _make(
        full_name: str = "Alice Example",
        amount: Decimal = Decimal("5000.00"),
        frequency: str = "monthly",
        currency_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        date_of_birth: date | None = None,
        unassigned: bool = False,
    ) -> Employee:
        employee = Employee(
            company_id=company.company_id,
            pay_group_id=None if unassigned else pay_group.pay_group_id,
            full_name=full_name,
            date_of_birth=date_of_birth,
        )
        session.add(employee)
        await session.flush()

        session.add(
            EmployeePosition(
                employee_id=employee.employee_id,
                position_title="Analyst",
                compensation_amount=amount,
                compensation_frequency=frequency,
                currency_id=currency_id,
                start_date=start_date,
                end_date=end_date,
                is_primary=True,
                is_active=True,
            )
        )
        await session.flush()
        return employee

    return _make


@pytest.fixture
def service(session: AsyncSession) -> PayrollRunService:
    return PayrollRunService(session)


@pytest.fixture
async def draft_run(service: PayrollRunService, company: Company, pay_period: PayPeriod, pay_group: PayGroup):
    """Draft run for the monthly pay group in June 2025."""
    return await service.create_run(
        company_id=company.company_id,
        pay_period_id=pay_period.pay_period_id,
        pay_group_id=pay_group.pay_group_id,
    )
