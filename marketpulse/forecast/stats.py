"""Numeric helpers for forecasting and trend analysis (numpy-based)."""

import math
from collections.abc import Sequence
from datetime import datetime

import numpy as np

from marketpulse.forecast.models import Trend

SECONDS_PER_HOUR = 3600.0
DAY_SECONDS = 24 * SECONDS_PER_HOUR
WEEK_SECONDS = 7 * DAY_SECONDS
CONFIDENCE_Z = 1.96


def mean_and_std(values: Sequence[float]) -> tuple[float, float]:
    """Mean and population standard deviation."""
    arr = np.asarray(values, dtype=float)
    return float(arr.mean()), float(arr.std())


def z_score(value: float, mean: float, std_dev: float) -> float | None:
    """|value - mean| / std_dev, or None when std_dev is zero."""
    if std_dev <= 0:
        return None
    return abs(value - mean) / std_dev


def is_anomalous(value: float, mean: float, std_dev: float, threshold: float) -> bool:
    z = z_score(value, mean, std_dev)
    return z is not None and z > threshold


def design_matrix(timestamps: Sequence[datetime], base: datetime) -> np.ndarray:
    """Regression features: intercept, hours since base, daily and weekly sine."""
    rows = []
    for ts in timestamps:
        epoch = ts.timestamp()
        rows.append(
            [
                1.0,
                (ts - base).total_seconds() / SECONDS_PER_HOUR,
                math.sin(2 * math.pi * epoch / DAY_SECONDS),
                math.sin(2 * math.pi * epoch / WEEK_SECONDS),
            ]
        )
    return np.asarray(rows, dtype=float)


def fit_regression(timestamps: Sequence[datetime], values: Sequence[float]) -> np.ndarray:
    """Least-squares coefficients for ``design_matrix`` features.

    Underdetermined systems (fewer samples than features) get the
    minimum-norm solution.
    """
    x = design_matrix(timestamps, timestamps[0])
    y = np.asarray(values, dtype=float)
    coefficients, *_ = np.linalg.lstsq(x, y, rcond=None)
    return coefficients


def predict_regression(coefficients: np.ndarray, timestamp: datetime, base: datetime) -> float:
    features = design_matrix([timestamp], base)[0]
    return float(features @ coefficients)


def exponential_smoothing(values: Sequence[float], alpha: float) -> float:
    """Final level of simple exponential smoothing (the one-step forecast)."""
    level = float(values[0])
    for value in values[1:]:
        level = alpha * float(value) + (1 - alpha) * level
    return level


def slope_per_hour(timestamps: Sequence[datetime], values: Sequence[float]) -> float:
    """Fitted linear slope in value units per hour."""
    if len(values) < 2:
        return 0.0
    hours = np.asarray(
        [(ts - timestamps[0]).total_seconds() / SECONDS_PER_HOUR for ts in timestamps],
        dtype=float,
    )
    if np.ptp(hours) == 0:
        return 0.0
    slope, _intercept = np.polyfit(hours, np.asarray(values, dtype=float), 1)
    return float(slope)


def classify_trend(values: Sequence[float], dead_zone_pct: float = 5.0) -> Trend:
    """Classify a series by comparing the averages of its two halves.

    The change is relative to the first-half average, in percent. When the
    first half averages zero the absolute difference is compared instead.
    Changes within the dead zone are stable.
    """
    if len(values) < 2:
        return Trend.STABLE

    mid = len(values) // 2
    first = float(np.mean(values[:mid]))
    second = float(np.mean(values[mid:]))
    diff = second - first

    if first != 0:
        change = diff / abs(first) * 100.0
    else:
        change = diff

    if abs(change) <= dead_zone_pct:
        return Trend.STABLE
    return Trend.UP if change > 0 else Trend.DOWN


def hourly_series(timestamps: Sequence[datetime], values: Sequence[float]) -> np.ndarray:
    """Resample to hourly means; empty hours are filled with the series mean."""
    if not values:
        return np.asarray([], dtype=float)

    base = timestamps[0]
    buckets: dict[int, list[float]] = {}
    for ts, value in zip(timestamps, values):
        index = int((ts - base).total_seconds() // SECONDS_PER_HOUR)
        buckets.setdefault(index, []).append(value)

    fill = float(np.mean(values))
    size = max(buckets) + 1
    return np.asarray(
        [float(np.mean(buckets[i])) if i in buckets else fill for i in range(size)],
        dtype=float,
    )


def seasonality_strength(series: np.ndarray, lag: int) -> float:
    """Autocorrelation of the series at ``lag``, clamped to [0, 1].

    Returns 0.0 when the series is too short for the lag or is constant.
    """
    if lag <= 0 or len(series) < lag + 2:
        return 0.0

    centered = series - series.mean()
    denominator = float(np.dot(centered, centered))
    if denominator == 0:
        return 0.0

    numerator = float(np.dot(centered[:-lag], centered[lag:]))
    return min(1.0, max(0.0, numerator / denominator))
