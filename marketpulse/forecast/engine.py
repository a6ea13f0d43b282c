"""Forecast engine: predictions, anomaly detection and trend analysis.

Predictions average a least-squares regression (elapsed time plus daily and
weekly sine terms) with simple exponential smoothing. Every anomalous
predicted point raises an ANOMALY_DETECTED alert through the alert engine and
is recorded in the anomaly feed.

Usage:
    engine = ForecastEngine(store, alerts=alert_engine, feed=feed)
    result = await engine.predict_metric("cpu_usage")
    if result.status == ForecastStatus.INSUFFICIENT_DATA:
        ...
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from marketpulse.alerts.models import ANOMALY_DETECTED, AlertRaiser, Severity
from marketpulse.clock import Clock, utcnow
from marketpulse.errors import MetricQueryError
from marketpulse.forecast import stats
from marketpulse.forecast.feed import AnomalyFeed
from marketpulse.forecast.models import (
    AnomalyPoint,
    ForecastConfig,
    ForecastResult,
    ForecastStatus,
    Prediction,
    SeasonalityEstimate,
    TrendResult,
)
from marketpulse.metrics.models import MetricWindow
from marketpulse.metrics.store import MetricStore

logger = logging.getLogger(__name__)

DAILY_LAG_HOURS = 24
WEEKLY_LAG_HOURS = 24 * 7


class ForecastEngine:
    """Forecasts metrics and flags statistical anomalies."""

    def __init__(
        self,
        store: MetricStore,
        alerts: AlertRaiser | None = None,
        feed: AnomalyFeed | None = None,
        config: ForecastConfig | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.alerts = alerts
        self.feed = feed if feed is not None else AnomalyFeed()
        self.config = config or ForecastConfig()
        self._clock = clock

    async def predict_metric(self, metric: str) -> ForecastResult:
        """Forecast ``metric`` over the configured horizon.

        Returns an INSUFFICIENT_DATA result (no predictions) when the
        training window holds fewer than ``min_samples`` samples.

        Raises:
            MetricQueryError: If the metric store cannot be read
        """
        now = self._clock()
        window = await self._read(metric, now - self.config.training_window, now)

        if len(window) < self.config.min_samples:
            logger.info(
                "Insufficient data to forecast %s (%d samples)", metric, len(window)
            )
            return ForecastResult(
                metric=metric,
                status=ForecastStatus.INSUFFICIENT_DATA,
                generated_at=now,
                sample_count=len(window),
            )

        values = window.values
        timestamps = window.timestamps
        mean, std_dev = stats.mean_and_std(values)
        coefficients = stats.fit_regression(timestamps, values)
        smoothed = stats.exponential_smoothing(values, self.config.smoothing_alpha)

        predictions = []
        for target in self._horizon(now):
            regression = stats.predict_regression(coefficients, target, timestamps[0])
            value = (regression + smoothed) / 2
            predictions.append(
                Prediction(
                    metric=metric,
                    timestamp=target,
                    value=value,
                    confidence_bound=value + stats.CONFIDENCE_Z * std_dev,
                    anomaly=stats.is_anomalous(value, mean, std_dev, self.config.z_threshold),
                )
            )

        result = ForecastResult(
            metric=metric,
            status=ForecastStatus.OK,
            generated_at=now,
            sample_count=len(window),
            mean=mean,
            std_dev=std_dev,
            predictions=tuple(predictions),
        )

        for prediction in result.anomalies:
            await self._report_anomaly(prediction, mean, std_dev, now)

        return result

    async def detect_anomalies(self, metric: str) -> list[AnomalyPoint]:
        """Historical points in the training window whose z-score exceeds the threshold.

        Raises:
            MetricQueryError: If the metric store cannot be read
        """
        now = self._clock()
        window = await self._read(metric, now - self.config.training_window, now)
        if len(window) < self.config.min_samples:
            return []

        mean, std_dev = stats.mean_and_std(window.values)
        points = []
        for sample in window.samples:
            z = stats.z_score(sample.value, mean, std_dev)
            if z is not None and z > self.config.z_threshold:
                points.append(
                    AnomalyPoint(
                        metric=metric,
                        timestamp=sample.timestamp,
                        value=sample.value,
                        expected=mean,
                        deviation=z,
                    )
                )
        return points

    async def analyze_trends(self, metric: str) -> TrendResult:
        """Trend direction, hourly change rate and daily/weekly seasonality.

        Raises:
            MetricQueryError: If the metric store cannot be read
        """
        now = self._clock()
        window = await self._read(metric, now - self.config.trend_window, now)
        values = window.values
        timestamps = window.timestamps

        hourly = stats.hourly_series(timestamps, values)
        daily = stats.seasonality_strength(hourly, DAILY_LAG_HOURS)
        weekly = stats.seasonality_strength(hourly, WEEKLY_LAG_HOURS)
        cutoff = self.config.seasonality_cutoff

        return TrendResult(
            metric=metric,
            trend=stats.classify_trend(values, self.config.dead_zone_pct),
            change_rate=stats.slope_per_hour(timestamps, values),
            daily=SeasonalityEstimate(strength=daily, detected=daily > cutoff),
            weekly=SeasonalityEstimate(strength=weekly, detected=weekly > cutoff),
            sample_count=len(window),
        )

    async def run_cycle(self) -> dict[str, ForecastResult]:
        """Forecast every configured metric; one failing metric does not stop the rest."""
        results = {}
        for metric in self.config.metrics:
            try:
                results[metric] = await self.predict_metric(metric)
            except Exception as e:
                logger.exception("Forecast failed for %s: %s", metric, e)
        return results

    def _horizon(self, now: datetime) -> list[datetime]:
        steps = int(self.config.horizon / self.config.step)
        return [now + self.config.step * i for i in range(1, steps + 1)]

    async def _read(self, metric: str, start: datetime, end: datetime) -> MetricWindow:
        try:
            return await self.store.read_window(metric, start, end)
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to read {metric} history: {e}") from e

    async def _report_anomaly(
        self, prediction: Prediction, mean: float, std_dev: float, now: datetime
    ) -> None:
        z = stats.z_score(prediction.value, mean, std_dev) or 0.0
        point = AnomalyPoint(
            metric=prediction.metric,
            timestamp=prediction.timestamp,
            value=prediction.value,
            expected=mean,
            deviation=z,
            predicted=True,
            detected_at=now,
        )
        self.feed.record(point)

        if self.alerts is None:
            return

        # Threshold on the same side of the mean as the predicted value
        offset = self.config.z_threshold * std_dev
        threshold = mean + offset if prediction.value >= mean else mean - offset

        try:
            await self.alerts.raise_alert(
                type=ANOMALY_DETECTED,
                severity=anomaly_severity(prediction.value, threshold),
                message=(
                    f"Anomaly detected for {prediction.metric}: "
                    f"{prediction.value:.4g} (threshold: {threshold:.4g})"
                ),
                details={
                    "metric": prediction.metric,
                    "value": prediction.value,
                    "threshold": threshold,
                    "expected": mean,
                    "z_score": z,
                    "target_timestamp": prediction.timestamp.isoformat(),
                },
            )
        except Exception as e:
            logger.exception(
                "Failed to raise anomaly alert for %s: %s", prediction.metric, e
            )


def anomaly_severity(value: float, threshold: float) -> Severity:
    """Severity from how far the value overshoots the anomaly threshold.

    - more than 50% past the threshold: critical
    - more than 30%: high
    - more than 10%: medium
    - otherwise: low
    """
    if threshold == 0:
        return Severity.CRITICAL

    overshoot = abs(value - threshold) / abs(threshold)
    if overshoot > 0.5:
        return Severity.CRITICAL
    if overshoot > 0.3:
        return Severity.HIGH
    if overshoot > 0.1:
        return Severity.MEDIUM
    return Severity.LOW
