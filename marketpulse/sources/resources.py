"""Host resource probe backed by psutil."""

from dataclasses import dataclass
from typing import Protocol

import psutil


@dataclass(frozen=True)
class NetworkCounters:
    bytes_in: int
    bytes_out: int


class ResourceProbe(Protocol):
    """Protocol for host resource readings."""

    def cpu_fraction(self) -> float: ...

    def memory_fraction(self) -> float: ...

    def disk_percent(self) -> float: ...

    def network(self) -> NetworkCounters: ...


class PsutilResourceProbe:
    """Reads CPU, memory, disk and network counters from the local host."""

    def __init__(self, disk_path: str = "/"):
        self._disk_path = disk_path

    def cpu_fraction(self) -> float:
        """Non-idle CPU fraction averaged across cores (0..1)."""
        per_core = psutil.cpu_times_percent(interval=None, percpu=True)
        if not per_core:
            return 0.0
        busy = [max(0.0, 100.0 - core.idle) / 100.0 for core in per_core]
        return sum(busy) / len(busy)

    def memory_fraction(self) -> float:
        memory = psutil.virtual_memory()
        if memory.total == 0:
            return 0.0
        return (memory.total - memory.available) / memory.total

    def disk_percent(self) -> float:
        return float(psutil.disk_usage(self._disk_path).percent)

    def network(self) -> NetworkCounters:
        counters = psutil.net_io_counters()
        return NetworkCounters(bytes_in=counters.bytes_recv, bytes_out=counters.bytes_sent)
