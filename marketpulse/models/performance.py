"""PerformanceAnalysisRecord model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from marketpulse.clock import utcnow
from marketpulse.db.database import Base


class PerformanceAnalysisRecord(Base):
    __tablename__ = "performance_analyses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    overall_score: Mapped[float] = mapped_column(Float)
    metrics: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    resource_usage: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    bottlenecks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    recommendations: Mapped[list[str]] = mapped_column(JSON, default=list)
