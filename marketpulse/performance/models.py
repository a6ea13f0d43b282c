"""Performance analysis models.

This module provides:
- ThresholdLevel / PerformanceThresholds: Two-level (warning, critical) limits
- PerformanceMetric: One request-side measurement
- ResourceUsage: Host resource readings (percent, bytes)
- Bottleneck: A resource at or over its warning threshold
- PerformanceAnalysis: The persisted result of one analysis
- BottleneckFrequency / PerformanceTrends: Output of trend reporting
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class BottleneckSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Weights used when averaging bottleneck severities
SEVERITY_SCORES: dict[BottleneckSeverity, int] = {
    BottleneckSeverity.LOW: 1,
    BottleneckSeverity.MEDIUM: 2,
    BottleneckSeverity.HIGH: 3,
}


@dataclass(frozen=True)
class ThresholdLevel:
    warning: float
    critical: float

    def __post_init__(self) -> None:
        if self.critical < self.warning:
            raise ValueError(f"critical ({self.critical}) must be >= warning ({self.warning})")


@dataclass(frozen=True)
class PerformanceThresholds:
    """Warning and critical levels per resource.

    Attributes:
        cpu: CPU utilization, percent
        memory: Memory utilization, percent
        disk: Disk utilization, percent
        response_time: Average response time, milliseconds
        error_rate: Server error share of requests, percent
        concurrent_users: Distinct users active in the trailing window
    """

    cpu: ThresholdLevel = ThresholdLevel(warning=70, critical=85)
    memory: ThresholdLevel = ThresholdLevel(warning=80, critical=90)
    disk: ThresholdLevel = ThresholdLevel(warning=85, critical=95)
    response_time: ThresholdLevel = ThresholdLevel(warning=1000, critical=2000)
    error_rate: ThresholdLevel = ThresholdLevel(warning=1, critical=5)
    concurrent_users: ThresholdLevel = ThresholdLevel(warning=100, critical=200)


@dataclass(frozen=True)
class PerformanceMetric:
    name: str
    value: float
    timestamp: datetime


@dataclass(frozen=True)
class ResourceUsage:
    cpu: float
    memory: float
    disk: float
    network_bytes_in: int = 0
    network_bytes_out: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "cpu": self.cpu,
            "memory": self.memory,
            "disk": self.disk,
            "network": {"bytes_in": self.network_bytes_in, "bytes_out": self.network_bytes_out},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceUsage":
        network = data.get("network") or {}
        return cls(
            cpu=float(data.get("cpu", 0)),
            memory=float(data.get("memory", 0)),
            disk=float(data.get("disk", 0)),
            network_bytes_in=int(network.get("bytes_in", 0)),
            network_bytes_out=int(network.get("bytes_out", 0)),
        )


@dataclass(frozen=True)
class Bottleneck:
    """A resource at or over its warning threshold.

    Attributes:
        resource: Display name (e.g., "CPU", "Response Time")
        severity: medium at warning, high at critical
        impact: Weight in [0, 1] subtracted (times 10) from the score
        recommendations: Fixed advice for this resource and level
        value: Observed value
        threshold: The threshold that was crossed
    """

    resource: str
    severity: BottleneckSeverity
    impact: float
    recommendations: tuple[str, ...]
    value: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "severity": self.severity.value,
            "impact": self.impact,
            "recommendations": list(self.recommendations),
            "value": self.value,
            "threshold": self.threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bottleneck":
        return cls(
            resource=data["resource"],
            severity=BottleneckSeverity(data["severity"]),
            impact=float(data["impact"]),
            recommendations=tuple(data.get("recommendations") or ()),
            value=data.get("value"),
            threshold=data.get("threshold"),
        )


@dataclass(frozen=True)
class PerformanceAnalysis:
    timestamp: datetime
    overall_score: float
    metrics: tuple[PerformanceMetric, ...]
    resource_usage: ResourceUsage
    bottlenecks: tuple[Bottleneck, ...]
    recommendations: tuple[str, ...]
    id: int | None = None

    def metric(self, name: str) -> float | None:
        for metric in self.metrics:
            if metric.name == name:
                return metric.value
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "overall_score": self.overall_score,
            "metrics": [
                {"name": m.name, "value": m.value, "timestamp": m.timestamp.isoformat()}
                for m in self.metrics
            ],
            "resource_usage": self.resource_usage.to_dict(),
            "bottlenecks": [b.to_dict() for b in self.bottlenecks],
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class BottleneckFrequency:
    resource: str
    frequency: float
    severity: BottleneckSeverity


@dataclass(frozen=True)
class PerformanceTrends:
    current_score: float
    score_trend: str
    cpu: str
    memory: str
    disk: str
    common_bottlenecks: list[BottleneckFrequency] = field(default_factory=list)
    analysis_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": {"current": self.current_score, "trend": self.score_trend},
            "resource_usage": {"cpu": self.cpu, "memory": self.memory, "disk": self.disk},
            "common_bottlenecks": [
                {**asdict(b), "severity": b.severity.value} for b in self.common_bottlenecks
            ],
            "analysis_count": self.analysis_count,
        }
