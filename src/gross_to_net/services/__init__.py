"""Payroll run services."""

from gross_to_net.services.locking_service import EmployeeLockedError, EmployeeLockService
from gross_to_net.services.payroll_run_service import (
    PayrollRunBusyError,
    PayrollRunFailedError,
    PayrollRunNotFoundError,
    PayrollRunService,
)
from gross_to_net.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
    RecalculationNotApprovedError,
)

__all__ = [
    "EmployeeLockService",
    "EmployeeLockedError",
    "InvalidTransitionError",
    "PayrollRunBusyError",
    "PayrollRunFailedError",
    "PayrollRunNotFoundError",
    "PayrollRunService",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "RecalculationNotApprovedError",
]
