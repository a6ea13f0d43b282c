"""Session store: recently active user sessions."""

from collections.abc import Callable
from typing import Protocol

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.clock import TimeWindow
from marketpulse.models.activity import UserSession


class SessionStore(Protocol):
    """Protocol for the user session collaborator."""

    async def count_active(self, window: TimeWindow) -> int: ...

    async def count_active_users(self, window: TimeWindow) -> int: ...


class SqlSessionStore:
    """SQLAlchemy-backed session store over ``user_sessions``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def count_active(self, window: TimeWindow) -> int:
        stmt = (
            select(func.count(UserSession.id))
            .where(UserSession.last_activity >= window.start)
            .where(UserSession.last_activity <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)

    async def count_active_users(self, window: TimeWindow) -> int:
        stmt = (
            select(func.count(distinct(UserSession.user_id)))
            .where(UserSession.last_activity >= window.start)
            .where(UserSession.last_activity <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)
