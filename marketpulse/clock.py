"""UTC time helpers shared by stores and services."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def ensure_utc(timestamp: datetime) -> datetime:
    """Normalize a timestamp to UTC.

    - If naive: assume UTC (SQLite returns naive datetimes)
    - If other tz: convert to UTC
    """
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    if timestamp.tzinfo == timezone.utc:
        return timestamp
    return timestamp.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """A trailing interval ``[start, end]`` in UTC."""

    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, duration: timedelta, now: datetime | None = None) -> "TimeWindow":
        end = ensure_utc(now) if now is not None else utcnow()
        return cls(start=end - duration, end=end)

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= ensure_utc(timestamp) <= self.end
