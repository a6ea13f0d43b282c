"""Log store: request and error statistics from the system log table."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.clock import TimeWindow
from marketpulse.models.activity import LogLevel, SystemLog

HTTP_CATEGORY = "http"


@dataclass(frozen=True)
class RequestStats:
    """HTTP request statistics over a window.

    Attributes:
        total: Number of http log entries
        errors: Entries logged at level=error
        server_errors: Entries with status_code >= 500
        avg_duration_ms: Mean request duration, None when there were no requests
    """

    total: int
    errors: int
    server_errors: int
    avg_duration_ms: float | None


class LogStore(Protocol):
    """Protocol for the system log collaborator."""

    async def count_by_level(self, level: str, window: TimeWindow) -> int: ...

    async def request_stats(self, window: TimeWindow) -> RequestStats: ...

    async def count_distinct_users(self, window: TimeWindow) -> int: ...


class SqlLogStore:
    """SQLAlchemy-backed log store over ``system_logs``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def count_by_level(self, level: str, window: TimeWindow) -> int:
        stmt = (
            select(func.count(SystemLog.id))
            .where(SystemLog.level == level)
            .where(SystemLog.created_at >= window.start)
            .where(SystemLog.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)

    async def request_stats(self, window: TimeWindow) -> RequestStats:
        stmt = (
            select(
                func.count(SystemLog.id),
                func.sum(case((SystemLog.level == LogLevel.ERROR.value, 1), else_=0)),
                func.sum(case((SystemLog.status_code >= 500, 1), else_=0)),
                func.avg(SystemLog.duration_ms),
            )
            .where(SystemLog.category == HTTP_CATEGORY)
            .where(SystemLog.created_at >= window.start)
            .where(SystemLog.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            total, errors, server_errors, avg_duration = result.one()

        return RequestStats(
            total=int(total or 0),
            errors=int(errors or 0),
            server_errors=int(server_errors or 0),
            avg_duration_ms=float(avg_duration) if avg_duration is not None else None,
        )

    async def count_distinct_users(self, window: TimeWindow) -> int:
        stmt = (
            select(func.count(distinct(SystemLog.user_id)))
            .where(SystemLog.user_id.is_not(None))
            .where(SystemLog.created_at >= window.start)
            .where(SystemLog.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)
