"""SQLAlchemy ORM models."""

from gross_to_net.models.base import Base, TimestampMixin
from gross_to_net.models.benefits import (
    BenefitEnrollment,
    BenefitPlan,
    PlanPayrollMapping,
    SavingsEnrollment,
    SavingsProgram,
)
from gross_to_net.models.company import Company, Currency, Employee, PayGroup
from gross_to_net.models.compensation import (
    EmployeeCompensation,
    EmployeePosition,
    ExpenseClaim,
    PeriodAllowance,
    PeriodDeduction,
    RetroactiveAdjustment,
)
from gross_to_net.models.payroll import (
    AuditEvent,
    EmployeeLock,
    EmployeePayroll,
    PayPeriod,
    PayrollRun,
)
from gross_to_net.models.statutory import (
    ExchangeRateSnapshot,
    OpeningBalance,
    StatutoryDeductionType,
    StatutoryRateBand,
)

__all__ = [
    "AuditEvent",
    "Base",
    "BenefitEnrollment",
    "BenefitPlan",
    "Company",
    "Currency",
    "Employee",
    "EmployeeCompensation",
    "EmployeeLock",
    "EmployeePayroll",
    "EmployeePosition",
    "ExchangeRateSnapshot",
    "ExpenseClaim",
    "OpeningBalance",
    "PayGroup",
    "PayPeriod",
    "PayrollRun",
    "PeriodAllowance",
    "PeriodDeduction",
    "PlanPayrollMapping",
    "RetroactiveAdjustment",
    "SavingsEnrollment",
    "SavingsProgram",
    "StatutoryDeductionType",
    "StatutoryRateBand",
    "TimestampMixin",
]
