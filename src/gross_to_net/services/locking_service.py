"""Employee locking for payroll runs in progress."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gross_to_net.models import EmployeeLock

logger = logging.getLogger(__name__)


class EmployeeLockedError(Exception):
    """Raised when employees are already locked by another payroll run."""

    def __init__(self, conflicts: dict[UUID, UUID]):
        # employee_id -> payroll_run_id holding the lock
        self.conflicts = conflicts
        sample = ", ".join(str(e) for e in list(conflicts)[:5])
        super().__init__(
            f"{len(conflicts)} employee(s) locked by another payroll run: {sample}"
        )


class EmployeeLockService:
    """Claims employees for one payroll run while it processes them.

    A lock row exists per (run, employee). Unlocking stamps unlocked_at and
    unlocked_by rather than deleting, so the history of claims is kept.
    Locking again for the same run reactivates the existing row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_conflicts(
        self, payroll_run_id: UUID, employee_ids: Iterable[UUID]
    ) -> dict[UUID, UUID]:
        """Return held locks on these employees owned by other runs."""
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(EmployeeLock.employee_id, EmployeeLock.payroll_run_id).where(
                EmployeeLock.employee_id.in_(ids),
                EmployeeLock.payroll_run_id != payroll_run_id,
                EmployeeLock.unlocked_at.is_(None),
            )
        )
        return {employee_id: run_id for employee_id, run_id in result.all()}

    async def lock_employees(
        self,
        payroll_run_id: UUID,
        employee_ids: Iterable[UUID],
        pay_group_id: UUID | None = None,
        locked_by: UUID | None = None,
        lock_reason: str = "payroll_processing",
    ) -> int:
        """Lock employees for a run.

        Returns count of locks taken or reactivated.

        Raises:
            EmployeeLockedError: If any employee is locked by another run
        """
        ids = list(dict.fromkeys(employee_ids))
        conflicts = await self.find_conflicts(payroll_run_id, ids)
        if conflicts:
            raise EmployeeLockedError(conflicts)

        now = datetime.now(timezone.utc)
        existing_result = await self.session.execute(
            select(EmployeeLock).where(
                EmployeeLock.payroll_run_id == payroll_run_id,
                EmployeeLock.employee_id.in_(ids),
            )
        )
        existing = {lock.employee_id: lock for lock in existing_result.scalars().all()}

        for employee_id in ids:
            lock = existing.get(employee_id)
            if lock is None:
                self.session.add(
                    EmployeeLock(
                        payroll_run_id=payroll_run_id,
                        employee_id=employee_id,
                        pay_group_id=pay_group_id,
                        lock_reason=lock_reason,
                        locked_by=locked_by,
                        locked_at=now,
                    )
                )
            elif not lock.is_held:
                lock.locked_at = now
                lock.locked_by = locked_by
                lock.lock_reason = lock_reason
                lock.unlocked_at = None
                lock.unlocked_by = None

        await self.session.flush()
        logger.info("Locked %d employee(s) for payroll run %s", len(ids), payroll_run_id)
        return len(ids)

    async def unlock_run(self, payroll_run_id: UUID, unlocked_by: UUID | None = None) -> int:
        """Release every held lock of a run (for reopen).

        Returns count of released locks.
        """
        result = await self.session.execute(
            update(EmployeeLock)
            .where(
                EmployeeLock.payroll_run_id == payroll_run_id,
                EmployeeLock.unlocked_at.is_(None),
            )
            .values(unlocked_at=datetime.now(timezone.utc), unlocked_by=unlocked_by)
        )
        released = result.rowcount or 0
        logger.info("Released %d employee lock(s) for payroll run %s", released, payroll_run_id)
        return released

    async def unlock_employee(
        self, payroll_run_id: UUID, employee_id: UUID, unlocked_by: UUID | None = None
    ) -> bool:
        """Release one employee's lock. Returns False if none was held."""
        result = await self.session.execute(
            update(EmployeeLock)
            .where(
                EmployeeLock.payroll_run_id == payroll_run_id,
                EmployeeLock.employee_id == employee_id,
                EmployeeLock.unlocked_at.is_(None),
            )
            .values(unlocked_at=datetime.now(timezone.utc), unlocked_by=unlocked_by)
        )
        return bool(result.rowcount)

    async def get_locked_employee_ids(self, payroll_run_id: UUID) -> list[UUID]:
        """Employees currently locked by a run."""
        result = await self.session.execute(
            select(EmployeeLock.employee_id).where(
                EmployeeLock.payroll_run_id == payroll_run_id,
                EmployeeLock.unlocked_at.is_(None),
            )
        )
        return list(result.scalars().all())
