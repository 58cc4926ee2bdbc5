"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gross_to_net import __version__
from gross_to_net.api.routes import health_router, payroll_runs_router
from gross_to_net.database import dispose_db, init_db
from gross_to_net.services import (
    EmployeeLockedError,
    InvalidTransitionError,
    PayrollRunBusyError,
    PayrollRunFailedError,
    PayrollRunNotFoundError,
    RecalculationNotApprovedError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def _error(status_code: int, detail: str, code: str, context: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, "context": context},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map service errors to HTTP responses."""

    @app.exception_handler(PayrollRunNotFoundError)
    async def not_found_handler(request: Request, exc: PayrollRunNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc), "NOT_FOUND")

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        code = (
            "RECALCULATION_NOT_APPROVED"
            if isinstance(exc, RecalculationNotApprovedError)
            else "INVALID_TRANSITION"
        )
        return _error(
            status.HTTP_409_CONFLICT,
            str(exc),
            code,
            {"from_status": str(exc.from_status), "to_status": str(exc.to_status)},
        )

    @app.exception_handler(EmployeeLockedError)
    async def locked_handler(request: Request, exc: EmployeeLockedError) -> JSONResponse:
        return _error(
            status.HTTP_409_CONFLICT,
            str(exc),
            "EMPLOYEE_LOCKED",
            {str(e): str(r) for e, r in exc.conflicts.items()},
        )

    @app.exception_handler(PayrollRunBusyError)
    async def busy_handler(request: Request, exc: PayrollRunBusyError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc), "RUN_BUSY")

    @app.exception_handler(PayrollRunFailedError)
    async def failed_handler(request: Request, exc: PayrollRunFailedError) -> JSONResponse:
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            str(exc),
            "RUN_FAILED",
            {"payroll_run_id": str(exc.payroll_run_id), "reason": exc.reason},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "INTERNAL_ERROR",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Gross-to-Net Payroll Engine API",
        description="Payroll run calculation: gross pay, statutory deductions, and net pay",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(payroll_runs_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
