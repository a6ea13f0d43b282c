"""Forecast data models.

This module provides:
- ForecastStatus: Whether a forecast could be produced
- Prediction: One forecast point with its confidence bound and anomaly flag
- ForecastResult: Predictions plus the training statistics behind them
- AnomalyPoint: A point whose z-score exceeded the threshold
- Trend / SeasonalityEstimate / TrendResult: Output of trend analysis
- ForecastConfig: Tunables for the engine
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class ForecastStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass(frozen=True)
class Prediction:
    """One forecast point.

    Attributes:
        metric: Metric name
        timestamp: Target time, strictly after the generation time
        value: Predicted value
        confidence_bound: One-sided 95% bound (value + 1.96 * sigma)
        anomaly: Whether the predicted value is anomalous
    """

    metric: str
    timestamp: datetime
    value: float
    confidence_bound: float
    anomaly: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "confidence_bound": self.confidence_bound,
            "anomaly": self.anomaly,
        }


@dataclass(frozen=True)
class ForecastResult:
    metric: str
    status: ForecastStatus
    generated_at: datetime
    sample_count: int
    mean: float | None = None
    std_dev: float | None = None
    predictions: tuple[Prediction, ...] = ()

    @property
    def anomalies(self) -> list[Prediction]:
        return [p for p in self.predictions if p.anomaly]


@dataclass(frozen=True)
class AnomalyPoint:
    """A point whose deviation from the window mean exceeded the z threshold.

    ``deviation`` is the z-score |value - expected| / sigma.
    """

    metric: str
    timestamp: datetime
    value: float
    expected: float
    deviation: float
    predicted: bool = False
    detected_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "expected": self.expected,
            "deviation": self.deviation,
            "predicted": self.predicted,
        }


@dataclass(frozen=True)
class SeasonalityEstimate:
    strength: float
    detected: bool


@dataclass(frozen=True)
class TrendResult:
    metric: str
    trend: Trend
    change_rate: float
    daily: SeasonalityEstimate
    weekly: SeasonalityEstimate
    sample_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "trend": self.trend.value,
            "change_rate": self.change_rate,
            "seasonality": {
                "daily": {"strength": self.daily.strength, "detected": self.daily.detected},
                "weekly": {"strength": self.weekly.strength, "detected": self.weekly.detected},
            },
            "sample_count": self.sample_count,
        }


@dataclass(frozen=True)
class ForecastConfig:
    """Forecast engine tunables.

    Attributes:
        z_threshold: z-score above which a point is anomalous (default: 2.5)
        training_window: History used for statistics and the model (default: 24h)
        horizon: How far ahead to forecast (default: 1h)
        step: Spacing between predictions (default: 5 minutes)
        trend_window: History used for trend and seasonality (default: 14 days)
        dead_zone_pct: Relative change below which a trend is stable (default: 5%)
        seasonality_cutoff: Strength above which seasonality is detected (default: 0.3)
        smoothing_alpha: Exponential smoothing factor (default: 0.2)
        min_samples: Fewest samples that make a forecast (default: 2)
        metrics: Metrics forecast on every scheduled cycle
    """

    z_threshold: float = 2.5
    training_window: timedelta = timedelta(hours=24)
    horizon: timedelta = timedelta(hours=1)
    step: timedelta = timedelta(minutes=5)
    trend_window: timedelta = timedelta(days=14)
    dead_zone_pct: float = 5.0
    seasonality_cutoff: float = 0.3
    smoothing_alpha: float = 0.2
    min_samples: int = 2
    metrics: tuple[str, ...] = ("cpu_usage", "memory_usage", "error_rate", "response_time", "request_rate")

    def __post_init__(self) -> None:
        if self.step.total_seconds() <= 0 or self.horizon < self.step:
            raise ValueError("step must be positive and no longer than horizon")
        if self.z_threshold <= 0:
            raise ValueError("z_threshold must be positive")
        if not 0 < self.smoothing_alpha <= 1:
            raise ValueError("smoothing_alpha must be in (0, 1]")
        if self.min_samples < 2:
            raise ValueError("min_samples must be at least 2")
