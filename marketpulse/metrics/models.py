"""Metric data models.

This module provides:
- MetricSample: One validated observation of a named metric
- MetricWindow: Ordered samples of one metric over an interval
- AggregatePoint: One bucket of an aggregated series
- SystemMetrics / BusinessMetrics: The two metric groups sampled per cycle
- MetricsSnapshot: The combined, broadcastable result of one collector cycle
"""

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any

from marketpulse.clock import ensure_utc
from marketpulse.errors import InvalidMetricValueError


@dataclass(frozen=True)
class MetricSample:
    """One observation of a named metric at a point in time.

    Attributes:
        metric: Metric name (e.g., "cpu_usage")
        value: Finite numeric value; NaN and infinities are rejected
        timestamp: Observation time, normalized to UTC
        tags: Optional string labels
    """

    metric: str
    value: float
    timestamp: datetime
    tags: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        value = float(self.value)
        if not math.isfinite(value):
            raise InvalidMetricValueError(self.metric, value)
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


@dataclass(frozen=True)
class MetricWindow:
    """Samples of one metric over ``[start, end)``, ascending by timestamp.

    Callers must check ``is_empty`` before computing statistics.
    """

    metric: str
    start: datetime
    end: datetime
    samples: tuple[MetricSample, ...] = ()

    @classmethod
    def from_samples(
        cls,
        metric: str,
        start: datetime,
        end: datetime,
        samples: list[MetricSample],
    ) -> "MetricWindow":
        ordered = tuple(sorted(samples, key=lambda s: s.timestamp))
        return cls(metric=metric, start=ensure_utc(start), end=ensure_utc(end), samples=ordered)

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def values(self) -> list[float]:
        return [s.value for s in self.samples]

    @property
    def timestamps(self) -> list[datetime]:
        return [s.timestamp for s in self.samples]

    def __len__(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class AggregatePoint:
    """One bucket of an aggregated series."""

    bucket_start: datetime
    value: float
    count: int


@dataclass(frozen=True)
class SystemMetrics:
    """System health metrics for one collector cycle.

    Attributes:
        cpu_usage: Non-idle CPU fraction averaged across cores (0..1)
        memory_usage: Used memory fraction (0..1)
        active_connections: Sessions active within the trailing window
        request_rate: HTTP requests per minute over the trailing window
        error_rate: Errors / requests over the trailing window (0 when idle)
        response_time: Average HTTP duration in milliseconds
    """

    cpu_usage: float
    memory_usage: float
    active_connections: int
    request_rate: float
    error_rate: float
    response_time: float

    def to_samples(self, timestamp: datetime) -> list[MetricSample]:
        return _to_samples(self, timestamp, group="system")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BusinessMetrics:
    """Business metrics over the trailing 24 hours."""

    active_users: int
    transaction_volume: int
    successful_transactions: int
    conversion_rate: float
    revenue: float

    def to_samples(self, timestamp: datetime) -> list[MetricSample]:
        return _to_samples(self, timestamp, group="business")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MetricsSnapshot:
    """The combined result of one collector cycle."""

    timestamp: datetime
    system: SystemMetrics
    business: BusinessMetrics

    def to_samples(self) -> list[MetricSample]:
        return self.system.to_samples(self.timestamp) + self.business.to_samples(self.timestamp)

    def to_event(self) -> dict[str, Any]:
        return {
            "type": "metrics_update",
            "data": {
                "timestamp": self.timestamp.isoformat(),
                "system": self.system.to_dict(),
                "business": self.business.to_dict(),
            },
        }


SYSTEM_METRIC_NAMES: tuple[str, ...] = tuple(f.name for f in fields(SystemMetrics))
BUSINESS_METRIC_NAMES: tuple[str, ...] = tuple(f.name for f in fields(BusinessMetrics))


def _to_samples(group_metrics: Any, timestamp: datetime, group: str) -> list[MetricSample]:
    return [
        MetricSample(
            metric=f.name,
            value=getattr(group_metrics, f.name),
            timestamp=timestamp,
            tags={"group": group},
        )
        for f in fields(group_metrics)
    ]
