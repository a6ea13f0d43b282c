"""Bounded in-memory feed of recently detected anomalies.

Written by the forecast engine and read by the ``forecast_anomaly`` rule
evaluator.
"""

from collections import deque

from marketpulse.clock import TimeWindow
from marketpulse.forecast.models import AnomalyPoint


class AnomalyFeed:
    """Keeps the most recent anomalies in detection order.

    Window queries match on ``detected_at`` when set (predicted points carry
    a future ``timestamp``), otherwise on ``timestamp``.
    """

    def __init__(self, max_size: int = 1000):
        self._points: deque[AnomalyPoint] = deque(maxlen=max_size)

    def record(self, point: AnomalyPoint) -> None:
        self._points.append(point)

    def in_window(self, window: TimeWindow, metric: str | None = None) -> list[AnomalyPoint]:
        return [
            p
            for p in list(self._points)
            if window.contains(p.detected_at or p.timestamp) and (metric is None or p.metric == metric)
        ]

    def __len__(self) -> int:
        return len(self._points)
