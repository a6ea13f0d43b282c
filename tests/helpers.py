"""Shared test doubles."""

import asyncio
from datetime import datetime, timedelta, timezone

from marketpulse.sources.resources import NetworkCounters

T0 = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for services that take ``clock=``."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProbe:
    """Host probe with fixed readings."""

    def __init__(self, cpu=0.2, memory=0.4, disk=50.0, bytes_in=1000, bytes_out=2000):
        self.cpu = cpu
        self.memory = memory
        self.disk = disk
        self.bytes_in = bytes_in
        self.bytes_out = bytes_out

    def cpu_fraction(self) -> float:
        return self.cpu

    def memory_fraction(self) -> float:
        return self.memory

    def disk_percent(self) -> float:
        return self.disk

    def network(self) -> NetworkCounters:
        return NetworkCounters(bytes_in=self.bytes_in, bytes_out=self.bytes_out)


class RecordingObserver:
    """Live observer that keeps every event it receives."""

    def __init__(self):
        self.events = []

    async def send_json(self, data) -> None:
        self.events.append(data)

    def of_type(self, event_type: str) -> list:
        return [e for e in self.events if e["type"] == event_type]


class StalledObserver:
    """Live observer whose sends never complete (a client that stopped reading)."""

    def __init__(self):
        self.attempts = 0

    async def send_json(self, data) -> None:
        self.attempts += 1
        await asyncio.sleep(3600)
