"""Monitoring API endpoints: metric history, forecasts and performance.

This module provides endpoints to:
- Read per-minute metric history for dashboards
- Forecast a metric and list its anomalies and trend
- Run, list and summarize performance analyses
"""

from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from marketpulse.api.deps import get_core
from marketpulse.clock import ensure_utc, utcnow
from marketpulse.core import MonitoringCore
from marketpulse.forecast.models import ForecastResult

# Response schemas


class MetricHistoryResponse(BaseModel):
    """Response model for metric history."""

    period: str
    system: list[dict[str, Any]]
    business: list[dict[str, Any]]


class PredictionResponse(BaseModel):
    timestamp: datetime
    value: float
    confidence_bound: float
    anomaly: bool


class ForecastResponse(BaseModel):
    """Response model for a metric forecast."""

    metric: str
    status: str
    generated_at: datetime
    sample_count: int
    mean: float | None
    std_dev: float | None
    predictions: list[PredictionResponse]


class AnomalyResponse(BaseModel):
    metric: str
    timestamp: datetime
    value: float
    expected: float
    deviation: float
    predicted: bool


class SeasonalityResponse(BaseModel):
    strength: float
    detected: bool


class TrendResponse(BaseModel):
    """Response model for trend analysis."""

    metric: str
    trend: str
    change_rate: float
    seasonality: dict[str, SeasonalityResponse]
    sample_count: int


# Router
router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


def _forecast_to_response(result: ForecastResult) -> ForecastResponse:
    return ForecastResponse(
        metric=result.metric,
        status=result.status.value,
        generated_at=result.generated_at,
        sample_count=result.sample_count,
        mean=result.mean,
        std_dev=result.std_dev,
        predictions=[
            PredictionResponse(
                timestamp=p.timestamp,
                value=p.value,
                confidence_bound=p.confidence_bound,
                anomaly=p.anomaly,
            )
            for p in result.predictions
        ],
    )


@router.get("/metrics", response_model=MetricHistoryResponse)
async def get_metric_history(
    period: str = Query(default="24h", description="One of 1h, 24h, 7d, 30d"),
    core: MonitoringCore = Depends(get_core),
) -> MetricHistoryResponse:
    """Per-minute history of system and business metrics.

    Unknown periods fall back to 24h.
    """
    history = await core.get_historical_metrics(period)
    return MetricHistoryResponse(**history)


@router.get("/metrics/{metric}/forecast", response_model=ForecastResponse)
async def get_forecast(
    metric: str,
    core: MonitoringCore = Depends(get_core),
) -> ForecastResponse:
    """Forecast one metric over the configured horizon.

    A metric without enough history returns status "insufficient_data" and
    no predictions.
    """
    result = await core.predict_metric(metric)
    return _forecast_to_response(result)


@router.get("/metrics/{metric}/anomalies", response_model=list[AnomalyResponse])
async def get_anomalies(
    metric: str,
    core: MonitoringCore = Depends(get_core),
) -> list[AnomalyResponse]:
    anomalies = await core.detect_anomalies(metric)
    return [AnomalyResponse(**a.to_dict()) for a in anomalies]


@router.get("/metrics/{metric}/trend", response_model=TrendResponse)
async def get_trend(
    metric: str,
    core: MonitoringCore = Depends(get_core),
) -> TrendResponse:
    result = await core.analyze_trends(metric)
    return TrendResponse(**result.to_dict())


@router.post("/performance/analyze")
async def analyze_performance(
    core: MonitoringCore = Depends(get_core),
) -> dict[str, Any]:
    """Run and persist one performance analysis now."""
    analysis = await core.analyze_performance()
    return analysis.to_dict()


@router.get("/performance/history")
async def get_performance_history(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    core: MonitoringCore = Depends(get_core),
) -> list[dict[str, Any]]:
    """Stored analyses in ``[start, end]``, oldest first.

    Defaults to the last 24 hours.

    Raises:
        HTTPException: 400 if start is after end
    """
    end = ensure_utc(end) if end else utcnow()
    start = ensure_utc(start) if start else end - timedelta(hours=24)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    history = await core.get_historical_performance(start, end)
    return [analysis.to_dict() for analysis in history]


@router.get("/performance/trends")
async def get_performance_trends(
    core: MonitoringCore = Depends(get_core),
) -> dict[str, Any]:
    """Score and resource trends over the last seven days."""
    trends = await core.get_trends()
    return trends.to_dict()
