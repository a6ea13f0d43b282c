"""Performance analyzer.

Scores overall platform health from request metrics and host resource usage,
lists bottlenecks with fixed recommendations, persists every analysis and
raises an alert when the score drops below the warning or critical level.

Usage:
    analyzer = PerformanceAnalyzer(logs, sessions, probe, store, alerts=alert_engine)
    analysis = await analyzer.analyze_performance()
    trends = await analyzer.get_trends()
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from marketpulse.alerts.models import PERFORMANCE_DEGRADATION, AlertRaiser, Severity
from marketpulse.clock import Clock, TimeWindow, ensure_utc, utcnow
from marketpulse.errors import MetricQueryError
from marketpulse.forecast.stats import classify_trend
from marketpulse.performance.models import (
    SEVERITY_SCORES,
    Bottleneck,
    BottleneckFrequency,
    BottleneckSeverity,
    PerformanceAnalysis,
    PerformanceMetric,
    PerformanceThresholds,
    PerformanceTrends,
    ResourceUsage,
    ThresholdLevel,
)
from marketpulse.performance.repository import PerformanceStore
from marketpulse.sources.logs import LogStore
from marketpulse.sources.resources import ResourceProbe
from marketpulse.sources.sessions import SessionStore

logger = logging.getLogger(__name__)

TREND_WINDOW = timedelta(days=7)

AUDIT_RECOMMENDATIONS = (
    "Run a full performance audit",
    "Consider refactoring the critical components",
)


@dataclass(frozen=True)
class _BottleneckRule:
    resource: str
    attribute: str
    medium_impact: float
    high_impact: float
    medium_advice: tuple[str, ...]
    high_advice: tuple[str, ...]


BOTTLENECK_RULES: tuple[_BottleneckRule, ...] = (
    _BottleneckRule(
        resource="CPU",
        attribute="cpu",
        medium_impact=0.6,
        high_impact=0.9,
        medium_advice=("Monitor CPU utilization", "Plan process optimization"),
        high_advice=(
            "Optimize CPU-intensive operations",
            "Consider horizontal scaling",
            "Check background processes",
        ),
    ),
    _BottleneckRule(
        resource="Memory",
        attribute="memory",
        medium_impact=0.5,
        high_impact=0.85,
        medium_advice=("Monitor memory growth", "Review cache sizes"),
        high_advice=(
            "Check for memory leaks",
            "Optimize cache management",
            "Increase available RAM",
        ),
    ),
    _BottleneckRule(
        resource="Disk",
        attribute="disk",
        medium_impact=0.4,
        high_impact=0.8,
        medium_advice=("Review log and upload retention",),
        high_advice=("Free disk space immediately", "Expand storage capacity"),
    ),
    _BottleneckRule(
        resource="Response Time",
        attribute="response_time",
        medium_impact=0.7,
        high_impact=0.95,
        medium_advice=("Profile slow endpoints", "Review database indexes"),
        high_advice=(
            "Optimize database queries",
            "Add or improve caching",
            "Check external API calls",
        ),
    ),
    _BottleneckRule(
        resource="Error Rate",
        attribute="error_rate",
        medium_impact=0.6,
        high_impact=0.9,
        medium_advice=("Review recent server errors",),
        high_advice=("Investigate failing endpoints", "Consider rolling back recent deployments"),
    ),
    _BottleneckRule(
        resource="Concurrent Users",
        attribute="concurrent_users",
        medium_impact=0.3,
        high_impact=0.6,
        medium_advice=("Plan capacity for peak traffic",),
        high_advice=("Scale out application servers", "Enable request rate limiting"),
    ),
)


class PerformanceAnalyzer:
    """Computes composite health scores and performance trends."""

    def __init__(
        self,
        logs: LogStore,
        sessions: SessionStore,
        probe: ResourceProbe,
        store: PerformanceStore,
        alerts: AlertRaiser | None = None,
        thresholds: PerformanceThresholds | None = None,
        critical_score: float = 50.0,
        warning_score: float = 70.0,
        trailing_window: timedelta = timedelta(minutes=5),
        dead_zone_pct: float = 5.0,
        clock: Clock = utcnow,
    ):
        if critical_score > warning_score:
            raise ValueError("critical_score must not exceed warning_score")

        self.logs = logs
        self.sessions = sessions
        self.probe = probe
        self.store = store
        self.alerts = alerts
        self.thresholds = thresholds or PerformanceThresholds()
        self.critical_score = critical_score
        self.warning_score = warning_score
        self.trailing_window = trailing_window
        self.dead_zone_pct = dead_zone_pct
        self._clock = clock

    async def analyze_performance(self) -> PerformanceAnalysis:
        """Run, persist and (if the score is low) alert on one analysis.

        Raises:
            MetricQueryError: If request metrics or the store cannot be read/written
        """
        now = self._clock()
        try:
            metrics = await self._collect_metrics(now)
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to collect performance metrics: {e}") from e

        usage = self._resource_usage()
        observed = {m.name: m.value for m in metrics}
        observed.update(cpu=usage.cpu, memory=usage.memory, disk=usage.disk)

        bottlenecks = detect_bottlenecks(observed, self.thresholds)
        analysis = PerformanceAnalysis(
            timestamp=now,
            overall_score=score(observed, bottlenecks, self.thresholds),
            metrics=tuple(metrics),
            resource_usage=usage,
            bottlenecks=tuple(bottlenecks),
            recommendations=tuple(recommendations_for(bottlenecks)),
        )

        try:
            analysis = await self.store.save(analysis)
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to persist performance analysis: {e}") from e

        logger.info(
            "Performance score %.1f with %d bottlenecks", analysis.overall_score, len(bottlenecks)
        )
        await self._alert_if_needed(analysis)
        return analysis

    async def get_historical_performance(
        self, start: datetime, end: datetime
    ) -> list[PerformanceAnalysis]:
        try:
            return await self.store.list_between(ensure_utc(start), ensure_utc(end))
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to read performance history: {e}") from e

    async def get_trends(self) -> PerformanceTrends:
        """Score and resource trends over the last 7 days, plus recurring bottlenecks."""
        end = self._clock()
        history = await self.get_historical_performance(end - TREND_WINDOW, end)

        return PerformanceTrends(
            current_score=history[-1].overall_score if history else 0.0,
            score_trend=self._trend([a.overall_score for a in history]),
            cpu=self._trend([a.resource_usage.cpu for a in history]),
            memory=self._trend([a.resource_usage.memory for a in history]),
            disk=self._trend([a.resource_usage.disk for a in history]),
            common_bottlenecks=common_bottlenecks(history),
            analysis_count=len(history),
        )

    async def run_cycle(self) -> PerformanceAnalysis | None:
        try:
            return await self.analyze_performance()
        except Exception as e:
            logger.exception("Performance analysis cycle failed: %s", e)
            return None

    def _trend(self, values: list[float]) -> str:
        return classify_trend(values, self.dead_zone_pct).value

    async def _collect_metrics(self, now: datetime) -> list[PerformanceMetric]:
        window = TimeWindow.trailing(self.trailing_window, now)
        stats = await self.logs.request_stats(window)
        users = await self.sessions.count_active_users(window)

        error_rate = stats.server_errors * 100.0 / stats.total if stats.total else 0.0
        return [
            PerformanceMetric("response_time", stats.avg_duration_ms or 0.0, now),
            PerformanceMetric("error_rate", error_rate, now),
            PerformanceMetric("concurrent_users", float(users), now),
        ]

    def _resource_usage(self) -> ResourceUsage:
        network = self.probe.network()
        return ResourceUsage(
            cpu=self.probe.cpu_fraction() * 100.0,
            memory=self.probe.memory_fraction() * 100.0,
            disk=self.probe.disk_percent(),
            network_bytes_in=network.bytes_in,
            network_bytes_out=network.bytes_out,
        )

    async def _alert_if_needed(self, analysis: PerformanceAnalysis) -> None:
        if self.alerts is None or analysis.overall_score >= self.warning_score:
            return

        if analysis.overall_score < self.critical_score:
            severity = Severity.CRITICAL
            message = (
                f"Critical performance: score {analysis.overall_score:.1f}. "
                "Immediate action required."
            )
        else:
            severity = Severity.HIGH
            message = (
                f"Degraded performance: score {analysis.overall_score:.1f}. "
                "Optimization recommended."
            )

        details: dict[str, Any] = {
            "score": analysis.overall_score,
            "analysis_id": analysis.id,
            "bottlenecks": [b.to_dict() for b in analysis.bottlenecks],
            "recommendations": list(analysis.recommendations),
        }
        try:
            await self.alerts.raise_alert(
                type=PERFORMANCE_DEGRADATION,
                severity=severity,
                message=message,
                details=details,
            )
        except Exception as e:
            logger.exception("Failed to raise performance alert: %s", e)


def detect_bottlenecks(
    observed: dict[str, float], thresholds: PerformanceThresholds
) -> list[Bottleneck]:
    """One bottleneck per resource at or over its warning threshold."""
    bottlenecks = []
    for rule in BOTTLENECK_RULES:
        value = observed.get(rule.attribute)
        if value is None:
            continue
        level: ThresholdLevel = getattr(thresholds, rule.attribute)

        if value >= level.critical:
            bottlenecks.append(
                Bottleneck(
                    resource=rule.resource,
                    severity=BottleneckSeverity.HIGH,
                    impact=rule.high_impact,
                    recommendations=rule.high_advice,
                    value=value,
                    threshold=level.critical,
                )
            )
        elif value >= level.warning:
            bottlenecks.append(
                Bottleneck(
                    resource=rule.resource,
                    severity=BottleneckSeverity.MEDIUM,
                    impact=rule.medium_impact,
                    recommendations=rule.medium_advice,
                    value=value,
                    threshold=level.warning,
                )
            )
    return bottlenecks


def score(
    observed: dict[str, float],
    bottlenecks: list[Bottleneck],
    thresholds: PerformanceThresholds,
) -> float:
    """100 minus bottleneck impacts and overages past warning, clamped to [0, 100]."""
    result = 100.0
    for bottleneck in bottlenecks:
        result -= bottleneck.impact * 10

    cpu = observed.get("cpu", 0.0)
    if cpu > thresholds.cpu.warning:
        result -= (cpu - thresholds.cpu.warning) * 0.5

    memory = observed.get("memory", 0.0)
    if memory > thresholds.memory.warning:
        result -= (memory - thresholds.memory.warning) * 0.4

    error_rate = observed.get("error_rate", 0.0)
    if error_rate > thresholds.error_rate.warning:
        result -= (error_rate - thresholds.error_rate.warning) * 5

    return max(0.0, min(100.0, result))


def recommendations_for(bottlenecks: list[Bottleneck]) -> list[str]:
    """Union of bottleneck advice in first-seen order, plus audits past two bottlenecks."""
    advice = dict.fromkeys(r for b in bottlenecks for r in b.recommendations)
    if len(bottlenecks) > 2:
        advice.update(dict.fromkeys(AUDIT_RECOMMENDATIONS))
    return list(advice)


def common_bottlenecks(history: list[PerformanceAnalysis]) -> list[BottleneckFrequency]:
    """Bottleneck resources ranked by how often they recur, with average severity."""
    if not history:
        return []

    counts: Counter[str] = Counter()
    severity_totals: dict[str, int] = {}
    for analysis in history:
        for bottleneck in analysis.bottlenecks:
            counts[bottleneck.resource] += 1
            severity_totals[bottleneck.resource] = (
                severity_totals.get(bottleneck.resource, 0) + SEVERITY_SCORES[bottleneck.severity]
            )

    ranked = []
    for resource, count in counts.most_common():
        average = severity_totals[resource] / count
        if average >= 2.5:
            severity = BottleneckSeverity.HIGH
        elif average >= 1.5:
            severity = BottleneckSeverity.MEDIUM
        else:
            severity = BottleneckSeverity.LOW
        ranked.append(
            BottleneckFrequency(
                resource=resource,
                frequency=count / len(history),
                severity=severity,
            )
        )
    return ranked
