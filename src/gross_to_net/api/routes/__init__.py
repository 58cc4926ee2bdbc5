"""API routes."""

from gross_to_net.api.routes.health import router as health_router
from gross_to_net.api.routes.payroll_runs import router as payroll_runs_router

__all__ = ["payroll_runs_router", "health_router"]
