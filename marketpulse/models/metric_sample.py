"""MetricSampleRecord model for the append-only metric time series."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from marketpulse.clock import utcnow
from marketpulse.db.database import Base


class MetricSampleRecord(Base):
    """One observation of a named metric.

    Rows are never updated; retention pruning is an external concern.
    """

    __tablename__ = "metric_samples"
    __table_args__ = (Index("idx_metric_samples_metric_time", "metric", "recorded_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric: Mapped[str] = mapped_column(String(64))
    value: Mapped[float] = mapped_column(Float)
    tags: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
