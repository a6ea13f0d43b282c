"""Supervisor for the periodic monitoring loops.

Each loop (collector, rule engine, forecast engine, performance analyzer)
runs on its own APScheduler interval job. A tick starts the loop's cycle as
a tracked task; if the previous cycle of the same loop is still running, the
tick is skipped, so a slow cycle delays the next one instead of overlapping
it. Every cycle runs inside one error boundary.

Usage:
    supervisor = MonitoringSupervisor(
        loops=[
            LoopSpec("collector", collector.run_cycle, interval_seconds=10),
            LoopSpec("rules", rule_engine.run_cycle, interval_seconds=60),
        ],
        dispatcher=dispatcher,
    )
    supervisor.start()
    ...
    await supervisor.stop()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class Drainable(Protocol):
    async def drain(self, timeout: float | None = None) -> None: ...


@dataclass(frozen=True)
class LoopSpec:
    """One periodic loop.

    Attributes:
        name: Job id and log label
        cycle: Coroutine function running one cycle
        interval_seconds: Time between ticks
    """

    name: str
    cycle: Callable[[], Awaitable[Any]]
    interval_seconds: float

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"Loop '{self.name}' needs a positive interval")


class MonitoringSupervisor:
    """Owns the scheduler and the in-flight cycle tasks."""

    def __init__(
        self,
        loops: Sequence[LoopSpec],
        dispatcher: Drainable | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ):
        names = [loop.name for loop in loops]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate loop names: {names}")

        self.loops = {loop.name: loop for loop in loops}
        self.dispatcher = dispatcher
        self.scheduler = scheduler or AsyncIOScheduler()
        self._running: dict[str, asyncio.Task] = {}
        self._started = False

    def start(self) -> None:
        """Register one interval job per loop and start the scheduler."""
        if self._started:
            return

        for loop in self.loops.values():
            self.scheduler.add_job(
                self._tick,
                IntervalTrigger(seconds=loop.interval_seconds),
                args=[loop.name],
                id=loop.name,
                name=f"Monitoring loop: {loop.name}",
                max_instances=1,
                coalesce=True,
            )
            logger.info("Scheduled %s every %.0fs", loop.name, loop.interval_seconds)

        self.scheduler.start()
        self._started = True
        logger.info("Monitoring supervisor started with %d loops", len(self.loops))

    async def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling, let in-flight cycles finish, then drain notifications.

        Cycles are awaited, never cancelled, so no metric write or alert
        persist is interrupted.
        """
        if self._started:
            self.scheduler.shutdown(wait=False)
            self._started = False

        pending = [task for task in self._running.values() if not task.done()]
        if pending:
            logger.info("Waiting for %d in-flight cycles", len(pending))
            await asyncio.wait(pending, timeout=timeout)

        if self.dispatcher is not None:
            await self.dispatcher.drain(timeout=timeout)

        logger.info("Monitoring supervisor stopped")

    async def run_once(self, name: str) -> None:
        """Run one cycle of a loop now, inside the same error boundary."""
        await self._run(self.loops[name])

    def is_running(self, name: str) -> bool:
        task = self._running.get(name)
        return task is not None and not task.done()

    @property
    def started(self) -> bool:
        return self._started

    async def _tick(self, name: str) -> None:
        if self.is_running(name):
            logger.debug("Previous %s cycle still running, skipping tick", name)
            return

        task = asyncio.create_task(self._run(self.loops[name]), name=f"monitoring_{name}")
        self._running[name] = task

    async def _run(self, loop: LoopSpec) -> None:
        try:
            await loop.cycle()
        except Exception as e:
            logger.exception("%s cycle failed: %s", loop.name, e)
