"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gross_to_net.database import init_db
from gross_to_net.services.payroll_run_service import PayrollRunService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_payroll_run_service(db: DbSession) -> PayrollRunService:
    """Payroll run service bound to the request's session."""
    return PayrollRunService(db)


# Type aliases for cleaner dependency injection
RunService = Annotated[PayrollRunService, Depends(get_payroll_run_service)]
