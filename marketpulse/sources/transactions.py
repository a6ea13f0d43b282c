"""Transaction store: payment outcomes from the marketplace transaction table."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.clock import TimeWindow
from marketpulse.models.activity import MarketplaceTransaction, TransactionStatus


@dataclass(frozen=True)
class TransactionSummary:
    """Transaction totals over a window."""

    total: int
    completed: int
    revenue: float


class TransactionStore(Protocol):
    """Protocol for the transaction collaborator."""

    async def count_by_status(self, status: str, window: TimeWindow) -> int: ...

    async def refund_rate(self, window: TimeWindow) -> float: ...

    async def summary(self, window: TimeWindow) -> TransactionSummary: ...


class SqlTransactionStore:
    """SQLAlchemy-backed transaction store over ``transactions``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def count_by_status(self, status: str, window: TimeWindow) -> int:
        stmt = (
            select(func.count(MarketplaceTransaction.id))
            .where(MarketplaceTransaction.status == status)
            .where(MarketplaceTransaction.created_at >= window.start)
            .where(MarketplaceTransaction.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)

    async def refund_rate(self, window: TimeWindow) -> float:
        """Refunded transactions as a percentage of all transactions.

        Returns 0.0 when the window holds no transactions.
        """
        refunded = MarketplaceTransaction.status == TransactionStatus.REFUNDED.value
        stmt = (
            select(
                func.count(MarketplaceTransaction.id),
                func.sum(case((refunded, 1), else_=0)),
            )
            .where(MarketplaceTransaction.created_at >= window.start)
            .where(MarketplaceTransaction.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            total, refunded_count = result.one()

        if not total:
            return 0.0
        return int(refunded_count or 0) * 100.0 / int(total)

    async def summary(self, window: TimeWindow) -> TransactionSummary:
        completed = MarketplaceTransaction.status == TransactionStatus.COMPLETED.value
        stmt = (
            select(
                func.count(MarketplaceTransaction.id),
                func.sum(case((completed, 1), else_=0)),
                func.sum(case((completed, MarketplaceTransaction.amount), else_=0)),
            )
            .where(MarketplaceTransaction.created_at >= window.start)
            .where(MarketplaceTransaction.created_at <= window.end)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            total, completed_count, revenue = result.one()

        return TransactionSummary(
            total=int(total or 0),
            completed=int(completed_count or 0),
            revenue=float(revenue or 0),
        )
