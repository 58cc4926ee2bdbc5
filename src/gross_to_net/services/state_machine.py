"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gross_to_net.models import PayrollRun


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"
    FAILED = "failed"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RecalculationNotApprovedError(InvalidTransitionError):
    """Raised when an approved run is recalculated without a recorded approval."""

    def __init__(self, payroll_run_id: str):
        self.payroll_run_id = payroll_run_id
        super().__init__(
            PayrollRunStatus.APPROVED.value,
            PayrollRunStatus.CALCULATING.value,
            "recalculation of an approved run requires a recorded approval",
        )


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → calculating
    - calculating → calculated | failed
    - calculated → calculating (recalculate) | approved
    - approved → calculating (only with recalculation approval) | paid
    - failed → calculating (retry)
    - calculating | calculated | approved | failed → draft (reopen)
    - paid is terminal
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT: [PayrollRunStatus.CALCULATING],
        PayrollRunStatus.CALCULATING: [
            PayrollRunStatus.CALCULATED,
            PayrollRunStatus.FAILED,
            PayrollRunStatus.DRAFT,
        ],
        PayrollRunStatus.CALCULATED: [
            PayrollRunStatus.CALCULATING,
            PayrollRunStatus.APPROVED,
            PayrollRunStatus.DRAFT,
        ],
        PayrollRunStatus.APPROVED: [
            PayrollRunStatus.CALCULATING,
            PayrollRunStatus.PAID,
            PayrollRunStatus.DRAFT,
        ],
        PayrollRunStatus.FAILED: [PayrollRunStatus.CALCULATING, PayrollRunStatus.DRAFT],
        PayrollRunStatus.PAID: [],  # Terminal state
    }

    # Statuses a run can be reopened from
    REOPENABLE = {
        PayrollRunStatus.CALCULATING,
        PayrollRunStatus.CALCULATED,
        PayrollRunStatus.APPROVED,
        PayrollRunStatus.FAILED,
    }

    # Statuses where exchange rates may still be captured
    RATES_MUTABLE = {PayrollRunStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def validate_calculation(cls, run: PayrollRun) -> None:
        """Validate that a run may (re)enter calculating.

        Raises:
            RecalculationNotApprovedError: If the run is approved without a
                recorded recalculation approval
            InvalidTransitionError: If the run cannot be calculated from its status
        """
        if run.status == PayrollRunStatus.APPROVED and not run.has_recalculation_approval:
            raise RecalculationNotApprovedError(str(run.payroll_run_id))
        cls.validate_transition(run.status, PayrollRunStatus.CALCULATING)

    @classmethod
    def can_reopen(cls, status: str) -> bool:
        return status in cls.REOPENABLE

    @classmethod
    def can_capture_rates(cls, status: str) -> bool:
        return status in cls.RATES_MUTABLE
