"""Employee locks seen from a second session while a run is calculating.

The shared in-memory database of the other tests runs every session on one
connection, so these tests use a database file instead.
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from gross_to_net.models import Base
from gross_to_net.services import EmployeeLockedError, EmployeeLockService, PayrollRunService


@pytest.fixture
async def engine(tmp_path):
    """File-backed database: each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


class TestLocksAcrossSessions:
    """Test that a run's claims are visible before its results are saved."""

    async def test_claims_visible_during_calculation(
        self, monkeypatch, session_factory, service, draft_run, make_employee, company, pay_period
    ):
        alice = await make_employee()
        alice_id = alice.employee_id
        run_id = draft_run.payroll_run_id
        other = await service.create_run(
            company.company_id, pay_period.pay_period_id, run_type="supplemental"
        )
        other_id = other.payroll_run_id
        seen = []
        calculate_employee = service.engine.calculate_employee

        async def observed(ctx, employee, position_id):
            async with session_factory() as other_session:
                locks = EmployeeLockService(other_session)
                seen.append(await locks.find_conflicts(other_id, [alice_id]))
            return await calculate_employee(ctx, employee, position_id)

        monkeypatch.setattr(service.engine, "calculate_employee", observed)
        run = await service.calculate_run(run_id)

        assert run.status == "calculated"
        assert seen == [{alice_id: run_id}]

    async def test_overlapping_run_blocked_during_calculation(
        self, monkeypatch, session_factory, service, draft_run, make_employee, company, pay_period
    ):
        """A company-wide run cannot take an employee a pay-group run is calculating."""
        await make_employee()
        run_id = draft_run.payroll_run_id
        other = await service.create_run(company.company_id, pay_period.pay_period_id)
        other_id = other.payroll_run_id
        outcomes = []
        calculate_employee = service.engine.calculate_employee

        async def observed(ctx, employee, position_id):
            async with session_factory() as other_session:
                with pytest.raises(EmployeeLockedError) as exc_info:
                    await PayrollRunService(other_session).calculate_run(other_id)
                outcomes.append(exc_info.value.conflicts)
            return await calculate_employee(ctx, employee, position_id)

        monkeypatch.setattr(service.engine, "calculate_employee", observed)
        await service.calculate_run(run_id)

        assert [set(c.values()) for c in outcomes] == [{run_id}]
        blocked = await service.get_run(other_id)
        assert blocked.status == "draft"
