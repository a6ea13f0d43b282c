"""Metric store for the append-only metric time series.

Usage:
    from marketpulse.metrics.store import SqlMetricStore

    store = SqlMetricStore(async_session)
    await store.write_many(snapshot.to_samples())
    window = await store.read_window("cpu_usage", start, end)
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Literal, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.clock import ensure_utc
from marketpulse.metrics.models import AggregatePoint, MetricSample, MetricWindow
from marketpulse.models.metric_sample import MetricSampleRecord

logger = logging.getLogger(__name__)

Aggregation = Literal["avg", "sum", "max", "min"]


class MetricStore(Protocol):
    """Protocol for time-series metric storage."""

    async def write(self, sample: MetricSample) -> None: ...

    async def write_many(self, samples: Sequence[MetricSample]) -> None: ...

    async def read_window(self, metric: str, start: datetime, end: datetime) -> MetricWindow: ...

    async def read_aggregate(
        self,
        metric: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
        how: Aggregation = "avg",
    ) -> list[AggregatePoint]: ...


class SqlMetricStore:
    """SQLAlchemy-backed metric store.

    Opens one session per operation so that concurrent loops never share
    a session. ``write_many`` commits all samples in one transaction.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def write(self, sample: MetricSample) -> None:
        await self.write_many([sample])

    async def write_many(self, samples: Sequence[MetricSample]) -> None:
        if not samples:
            return

        async with self._session_factory() as session:
            session.add_all(
                [
                    MetricSampleRecord(
                        metric=s.metric,
                        value=s.value,
                        tags=dict(s.tags) or None,
                        recorded_at=s.timestamp,
                    )
                    for s in samples
                ]
            )
            await session.commit()

    async def read_window(self, metric: str, start: datetime, end: datetime) -> MetricWindow:
        stmt = (
            select(MetricSampleRecord)
            .where(MetricSampleRecord.metric == metric)
            .where(MetricSampleRecord.recorded_at >= start)
            .where(MetricSampleRecord.recorded_at < end)
            .order_by(MetricSampleRecord.recorded_at.asc(), MetricSampleRecord.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        samples = [
            MetricSample(
                metric=row.metric,
                value=row.value,
                timestamp=row.recorded_at,
                tags=row.tags or {},
            )
            for row in rows
        ]
        return MetricWindow.from_samples(metric, start, end, samples)

    async def read_aggregate(
        self,
        metric: str,
        start: datetime,
        end: datetime,
        bucket: timedelta,
        how: Aggregation = "avg",
    ) -> list[AggregatePoint]:
        """Read a bucketed series.

        Buckets are aligned to ``start`` and computed in Python so the same
        code runs on PostgreSQL and SQLite. Empty buckets are omitted.
        """
        if bucket.total_seconds() <= 0:
            raise ValueError(f"bucket must be positive, got {bucket}")

        window = await self.read_window(metric, start, end)
        start = ensure_utc(start)
        bucket_seconds = bucket.total_seconds()

        grouped: dict[int, list[float]] = {}
        for sample in window.samples:
            index = int((sample.timestamp - start).total_seconds() // bucket_seconds)
            grouped.setdefault(index, []).append(sample.value)

        return [
            AggregatePoint(
                bucket_start=start + bucket * index,
                value=_aggregate(values, how),
                count=len(values),
            )
            for index, values in sorted(grouped.items())
        ]


def _aggregate(values: list[float], how: Aggregation) -> float:
    if how == "sum":
        return sum(values)
    if how == "max":
        return max(values)
    if how == "min":
        return min(values)
    return sum(values) / len(values)
