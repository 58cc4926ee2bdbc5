"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll Run schemas
# ============================================================================


class PayrollRunCreate(BaseModel):
    """Schema for creating a new payroll run."""

    company_id: UUID
    pay_period_id: UUID
    pay_group_id: UUID | None = None
    run_type: str = "regular"
    run_number: str | None = None
    actor_user_id: UUID | None = None


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    company_id: UUID
    pay_group_id: UUID | None = None
    pay_period_id: UUID
    run_number: str
    run_type: str
    status: str
    currency_id: UUID | None = None
    total_gross_pay: Decimal
    total_net_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    total_employer_taxes: Decimal
    total_employer_contributions: Decimal
    total_employer_cost: Decimal
    employee_count: int
    warning_count: int
    calculated_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    paid_at: datetime | None = None
    recalculation_requested_at: datetime | None = None
    recalculation_approved_at: datetime | None = None
    reopen_count: int
    failure_reason: str | None = None


class ActionRequest(BaseModel):
    """Actor and optional reason for a lifecycle action."""

    actor_user_id: UUID | None = None
    reason: str | None = None


# ============================================================================
# Exchange rate schemas
# ============================================================================


class ExchangeRateInput(BaseModel):
    from_currency_id: UUID
    to_currency_id: UUID
    rate: Decimal = Field(gt=0)


class ExchangeRateCapture(BaseModel):
    """Rates to freeze for a draft run."""

    rates: list[ExchangeRateInput] = Field(min_length=1)
    actor_user_id: UUID | None = None


class ExchangeRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_currency_id: UUID
    to_currency_id: UUID
    rate: Decimal
    captured_at: datetime | None = None


# ============================================================================
# Employee Payroll schemas
# ============================================================================


class EmployeePayrollResponse(BaseModel):
    """Schema for one employee's gross-to-net result."""

    model_config = ConfigDict(from_attributes=True)

    employee_payroll_id: UUID
    employee_id: UUID
    employee_position_id: UUID | None = None
    status: str
    gross_pay: Decimal
    regular_pay: Decimal
    other_earnings: Decimal
    allowance_pay: Decimal
    retro_pay: Decimal
    reimbursement_pay: Decimal
    taxable_income: Decimal
    pretax_deductions: Decimal
    tax_deductions: Decimal
    income_tax: Decimal
    benefit_deductions: Decimal
    retirement_deductions: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_taxes: Decimal
    employer_benefits: Decimal
    employer_retirement: Decimal
    total_employer_cost: Decimal
    calculation_id: UUID
    calculation_details: dict[str, Any]


class EmployeePayrollListResponse(BaseModel):
    items: list[EmployeePayrollResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
