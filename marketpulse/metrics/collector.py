"""Periodic sampler of system and business metrics.

Each cycle reads the host probe and the marketplace collaborators, persists
one combined snapshot and broadcasts it to live observers. A failed cycle is
logged and abandoned as a whole; the scheduler's next tick is the retry.

Usage:
    collector = MetricCollector(
        store=SqlMetricStore(async_session),
        logs=SqlLogStore(async_session),
        transactions=SqlTransactionStore(async_session),
        sessions=SqlSessionStore(async_session),
        probe=PsutilResourceProbe(),
        broadcaster=broadcaster,
    )
    snapshot = await collector.run_cycle()
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from marketpulse.clock import Clock, TimeWindow, utcnow
from marketpulse.errors import MetricQueryError, TransientCollectionError
from marketpulse.metrics.models import (
    BUSINESS_METRIC_NAMES,
    SYSTEM_METRIC_NAMES,
    BusinessMetrics,
    MetricsSnapshot,
    SystemMetrics,
)
from marketpulse.metrics.store import MetricStore
from marketpulse.notifications.broadcast import LiveBroadcast
from marketpulse.sources.logs import LogStore
from marketpulse.sources.resources import ResourceProbe
from marketpulse.sources.sessions import SessionStore
from marketpulse.sources.transactions import TransactionStore

logger = logging.getLogger(__name__)

BUSINESS_WINDOW = timedelta(hours=24)

# Dashboard periods; unknown periods fall back to 24h
HISTORY_PERIODS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_HISTORY_PERIOD = "24h"
HISTORY_BUCKET = timedelta(minutes=1)

# Metrics that are summed rather than averaged per bucket
SUMMED_METRICS: frozenset[str] = frozenset({"transaction_volume", "revenue"})


class MetricCollector:
    """Samples system and business metrics on each cycle."""

    def __init__(
        self,
        store: MetricStore,
        logs: LogStore,
        transactions: TransactionStore,
        sessions: SessionStore,
        probe: ResourceProbe,
        broadcaster: LiveBroadcast,
        trailing_window: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ):
        """Initialize the collector.

        Args:
            store: Metric store the snapshots are written to
            logs: Log collaborator (request and error counts)
            transactions: Transaction collaborator
            sessions: Session collaborator (active connections)
            probe: Host resource probe (CPU, memory)
            broadcaster: Live push transport
            trailing_window: Window shared by every system rate (default: 5 minutes)
            clock: Time source, injectable for tests
        """
        if trailing_window.total_seconds() <= 0:
            raise ValueError("trailing_window must be positive")

        self.store = store
        self.logs = logs
        self.transactions = transactions
        self.sessions = sessions
        self.probe = probe
        self.broadcaster = broadcaster
        self.trailing_window = trailing_window
        self._clock = clock

    async def collect_system_metrics(self, now=None) -> SystemMetrics:
        """Sample the host and request metrics over the trailing window.

        Raises:
            TransientCollectionError: If the log or session store cannot be read
        """
        window = TimeWindow.trailing(self.trailing_window, now or self._clock())

        try:
            stats = await self.logs.request_stats(window)
            active_connections = await self.sessions.count_active(window)
        except SQLAlchemyError as e:
            raise TransientCollectionError(f"Failed to read request metrics: {e}", source="logs") from e

        return SystemMetrics(
            cpu_usage=self.probe.cpu_fraction(),
            memory_usage=self.probe.memory_fraction(),
            active_connections=active_connections,
            request_rate=stats.total / window.minutes,
            error_rate=stats.errors / stats.total if stats.total else 0.0,
            response_time=stats.avg_duration_ms or 0.0,
        )

    async def collect_business_metrics(self, now=None) -> BusinessMetrics:
        window = TimeWindow.trailing(BUSINESS_WINDOW, now or self._clock())

        try:
            active_users = await self.logs.count_distinct_users(window)
            summary = await self.transactions.summary(window)
        except SQLAlchemyError as e:
            raise TransientCollectionError(
                f"Failed to read business metrics: {e}", source="transactions"
            ) from e

        return BusinessMetrics(
            active_users=active_users,
            transaction_volume=summary.total,
            successful_transactions=summary.completed,
            conversion_rate=summary.completed / summary.total if summary.total else 0.0,
            revenue=summary.revenue,
        )

    async def run_cycle(self) -> MetricsSnapshot | None:
        """Collect, persist and broadcast one snapshot.

        Returns:
            The published snapshot, or None when the cycle was abandoned
        """
        now = self._clock()
        try:
            system = await self.collect_system_metrics(now)
            business = await self.collect_business_metrics(now)
            snapshot = MetricsSnapshot(timestamp=now, system=system, business=business)
            await self.store.write_many(snapshot.to_samples())
        except TransientCollectionError as e:
            logger.warning("Metric collection cycle abandoned (%s): %s", e.source, e)
            return None
        except Exception as e:
            logger.exception("Metric collection cycle failed: %s", e)
            return None

        await self.broadcaster.publish(snapshot.to_event())
        logger.debug(
            "Metric cycle published (cpu=%.3f, error_rate=%.3f, transactions=%d)",
            system.cpu_usage,
            system.error_rate,
            business.transaction_volume,
        )
        return snapshot

    async def get_historical_metrics(self, period: str = DEFAULT_HISTORY_PERIOD) -> dict[str, Any]:
        """Per-minute history of both metric groups for dashboards.

        Args:
            period: One of "1h", "24h", "7d", "30d" (anything else means "24h")

        Returns:
            {"period", "system": [...], "business": [...]} with one row per
            minute bucket, oldest first

        Raises:
            MetricQueryError: If the metric store cannot be read
        """
        if period not in HISTORY_PERIODS:
            period = DEFAULT_HISTORY_PERIOD

        end = self._clock()
        start = end - HISTORY_PERIODS[period]

        try:
            system = await self._history_rows(SYSTEM_METRIC_NAMES, start, end)
            business = await self._history_rows(BUSINESS_METRIC_NAMES, start, end)
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to read metric history for {period}: {e}") from e

        return {"period": period, "system": system, "business": business}

    async def _history_rows(self, names, start, end) -> list[dict[str, Any]]:
        rows: dict = {}
        for name in names:
            how = "sum" if name in SUMMED_METRICS else "avg"
            points = await self.store.read_aggregate(name, start, end, HISTORY_BUCKET, how)
            for point in points:
                row = rows.setdefault(point.bucket_start, {"timestamp": point.bucket_start.isoformat()})
                row[name] = point.value
        return [rows[key] for key in sorted(rows)]
