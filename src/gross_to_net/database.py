"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gross_to_net.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_engine() -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine, if one was created."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def _supports_advisory_locks(session: AsyncSession) -> bool:
    return session.bind is not None and session.bind.dialect.name == "postgresql"


async def acquire_advisory_lock(session: AsyncSession, payroll_run_id: str) -> bool:
    """Acquire the run-scoped advisory lock for the current transaction.

    The lock is released automatically when the transaction commits or rolls
    back. Returns True if lock acquired, False if already held. Dialects
    without advisory locks always report the lock as acquired.
    """
    if not _supports_advisory_locks(session):
        return True
    result = await session.execute(
        text("SELECT pg_try_advisory_xact_lock(hashtext(:payroll_run_id))"),
        {"payroll_run_id": payroll_run_id},
    )
    row = result.scalar()
    return bool(row)
