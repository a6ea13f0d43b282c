"""Performance analysis store."""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.clock import ensure_utc
from marketpulse.models.performance import PerformanceAnalysisRecord
from marketpulse.performance.models import (
    Bottleneck,
    PerformanceAnalysis,
    PerformanceMetric,
    ResourceUsage,
)


class PerformanceStore(Protocol):
    async def save(self, analysis: PerformanceAnalysis) -> PerformanceAnalysis: ...

    async def list_between(self, start: datetime, end: datetime) -> list[PerformanceAnalysis]: ...


class SqlPerformanceStore:
    """SQLAlchemy-backed store over ``performance_analyses``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def save(self, analysis: PerformanceAnalysis) -> PerformanceAnalysis:
        data = analysis.to_dict()
        record = PerformanceAnalysisRecord(
            timestamp=analysis.timestamp,
            overall_score=analysis.overall_score,
            metrics=data["metrics"],
            resource_usage=data["resource_usage"],
            bottlenecks=data["bottlenecks"],
            recommendations=data["recommendations"],
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return _to_analysis(record)

    async def list_between(self, start: datetime, end: datetime) -> list[PerformanceAnalysis]:
        """Analyses with ``start <= timestamp <= end``, oldest first."""
        stmt = (
            select(PerformanceAnalysisRecord)
            .where(PerformanceAnalysisRecord.timestamp >= start)
            .where(PerformanceAnalysisRecord.timestamp <= end)
            .order_by(PerformanceAnalysisRecord.timestamp.asc(), PerformanceAnalysisRecord.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_analysis(record) for record in result.scalars().all()]


def _to_analysis(record: PerformanceAnalysisRecord) -> PerformanceAnalysis:
    return PerformanceAnalysis(
        id=record.id,
        timestamp=ensure_utc(record.timestamp),
        overall_score=record.overall_score,
        metrics=tuple(
            PerformanceMetric(
                name=m["name"],
                value=m["value"],
                timestamp=ensure_utc(datetime.fromisoformat(m["timestamp"])),
            )
            for m in record.metrics or []
        ),
        resource_usage=ResourceUsage.from_dict(record.resource_usage or {}),
        bottlenecks=tuple(Bottleneck.from_dict(b) for b in record.bottlenecks or []),
        recommendations=tuple(record.recommendations or ()),
    )
