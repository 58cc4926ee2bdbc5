"""Payroll run API endpoints.

Service errors are mapped to status codes by the handlers in api.app.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from gross_to_net.api.dependencies import RunService
from gross_to_net.api.schemas import (
    ActionRequest,
    EmployeePayrollListResponse,
    EmployeePayrollResponse,
    ErrorResponse,
    ExchangeRateCapture,
    ExchangeRateResponse,
    PayrollRunCreate,
    PayrollRunResponse,
)

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])

RunId = Annotated[UUID, Path()]

_CONFLICT = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


# ============================================================================
# Payroll Run CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_payroll_run(service: RunService, payload: PayrollRunCreate) -> PayrollRunResponse:
    """Create a new payroll run in draft status."""
    try:
        run = await service.create_run(
            company_id=payload.company_id,
            pay_period_id=payload.pay_period_id,
            pay_group_id=payload.pay_group_id,
            run_type=payload.run_type,
            run_number=payload.run_number,
            actor_user_id=payload.actor_user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/{payroll_run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(service: RunService, payroll_run_id: RunId) -> PayrollRunResponse:
    """Get a specific payroll run by ID."""
    run = await service.get_run(payroll_run_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payroll run not found",
        )
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/{payroll_run_id}/employees",
    response_model=EmployeePayrollListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_employee_payrolls(
    service: RunService, payroll_run_id: RunId
) -> EmployeePayrollListResponse:
    """List per-employee gross-to-net results of a run."""
    rows = await service.list_employee_payrolls(payroll_run_id)
    return EmployeePayrollListResponse(
        items=[EmployeePayrollResponse.model_validate(r) for r in rows],
        total=len(rows),
    )


# ============================================================================
# Exchange rates
# ============================================================================


@router.put(
    "/{payroll_run_id}/exchange-rates",
    response_model=list[ExchangeRateResponse],
    responses=_CONFLICT,
)
async def capture_exchange_rates(
    service: RunService, payroll_run_id: RunId, payload: ExchangeRateCapture
) -> list[ExchangeRateResponse]:
    """Freeze exchange rates for a draft run."""
    snapshots = await service.capture_exchange_rates(
        payroll_run_id,
        {(r.from_currency_id, r.to_currency_id): r.rate for r in payload.rates},
        actor_user_id=payload.actor_user_id,
    )
    return [ExchangeRateResponse.model_validate(s) for s in snapshots]


# ============================================================================
# Lifecycle
# ============================================================================


@router.post(
    "/{payroll_run_id}/calculate",
    response_model=PayrollRunResponse,
    responses={**_CONFLICT, 422: {"model": ErrorResponse}},
)
async def calculate_payroll_run(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest | None = None
) -> PayrollRunResponse:
    """Calculate gross-to-net for every employee in the run."""
    actor = payload.actor_user_id if payload else None
    run = await service.calculate_run(payroll_run_id, actor)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/recalculate",
    response_model=PayrollRunResponse,
    responses={**_CONFLICT, 422: {"model": ErrorResponse}},
)
async def recalculate_payroll_run(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest | None = None
) -> PayrollRunResponse:
    """Discard and rebuild a run's results."""
    actor = payload.actor_user_id if payload else None
    run = await service.recalculate_run(payroll_run_id, actor)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/recalculation-request",
    response_model=PayrollRunResponse,
    responses=_CONFLICT,
)
async def request_recalculation(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest
) -> PayrollRunResponse:
    run = await service.request_recalculation(
        payroll_run_id, payload.actor_user_id, payload.reason
    )
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/recalculation-approval",
    response_model=PayrollRunResponse,
    responses=_CONFLICT,
)
async def approve_recalculation(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest
) -> PayrollRunResponse:
    run = await service.approve_recalculation(payroll_run_id, payload.actor_user_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/approve",
    response_model=PayrollRunResponse,
    responses=_CONFLICT,
)
async def approve_payroll_run(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest
) -> PayrollRunResponse:
    run = await service.approve_run(payroll_run_id, payload.actor_user_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/pay",
    response_model=PayrollRunResponse,
    responses=_CONFLICT,
)
async def mark_payroll_run_paid(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest
) -> PayrollRunResponse:
    run = await service.mark_paid(payroll_run_id, payload.actor_user_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/reopen",
    response_model=PayrollRunResponse,
    responses=_CONFLICT,
)
async def reopen_payroll_run(
    service: RunService, payroll_run_id: RunId, payload: ActionRequest
) -> PayrollRunResponse:
    """Return a run to draft, unlocking employees and discarding results."""
    run = await service.reopen_run(payroll_run_id, payload.actor_user_id, payload.reason)
    return PayrollRunResponse.model_validate(run)
