from marketpulse.metrics.collector import MetricCollector
from marketpulse.metrics.models import (
    AggregatePoint,
    BusinessMetrics,
    MetricSample,
    MetricsSnapshot,
    MetricWindow,
    SystemMetrics,
)
from marketpulse.metrics.store import MetricStore, SqlMetricStore

__all__ = [
    "AggregatePoint",
    "BusinessMetrics",
    "MetricCollector",
    "MetricSample",
    "MetricStore",
    "MetricWindow",
    "MetricsSnapshot",
    "SqlMetricStore",
    "SystemMetrics",
]
