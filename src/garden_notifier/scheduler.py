"""Independent periodic timers for weather, stock and guild polling."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class PeriodicJob:
    """What to run and how often; the scheduler decides when."""

    name: str
    interval: float
    action: Action
    run_immediately: bool = True
    runs: int = 0
    coalesced: int = 0
    pending: bool = False
    current: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def busy(self) -> bool:
        return self.current is not None and not self.current.done()


class Scheduler:
    """Drive each job on its own timer.

    Every tick runs in a separate task so a slow or failing job never
    delays another job's timer. A tick that fires while the previous tick
    of the same job is still running is coalesced: at most one more tick
    runs once the current one finishes.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, PeriodicJob] = {}
        self._timers: list[asyncio.Task[None]] = []
        self._ticks: set[asyncio.Task[None]] = set()

    @property
    def jobs(self) -> list[PeriodicJob]:
        return list(self._jobs.values())

    def get(self, name: str) -> PeriodicJob:
        return self._jobs[name]

    def add(
        self,
        name: str,
        interval: float,
        action: Action,
        *,
        run_immediately: bool = True,
    ) -> PeriodicJob:
        if name in self._jobs:
            raise ValueError(f"job {name!r} is already scheduled")
        if interval <= 0:
            raise ValueError(f"job {name!r} needs a positive interval")
        job = PeriodicJob(
            name=name,
            interval=interval,
            action=action,
            run_immediately=run_immediately,
        )
        self._jobs[name] = job
        return job

    def start(self) -> None:
        if self._timers:
            return
        for job in self._jobs.values():
            self._timers.append(
                asyncio.create_task(self._timer(job), name=f"timer:{job.name}")
            )
        logger.info("Started %d scheduled jobs", len(self._timers))

    async def run(self) -> None:
        """Start every timer and wait until they are cancelled."""

        self.start()
        try:
            await asyncio.gather(*self._timers)
        finally:
            await self.stop()

    def trigger(self, name: str) -> asyncio.Task[None]:
        """Run one tick of ``name`` now.

        If a tick is already running, one more tick is queued behind it and
        the running task is returned.
        """

        job = self._jobs[name]
        if job.busy and job.current is not None:
            job.coalesced += 1
            job.pending = True
            logger.debug("Queued %s tick behind the run in progress", name)
            return job.current
        task = asyncio.create_task(self._run(job), name=f"tick:{name}")
        job.current = task
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)
        return task

    async def run_once(self, name: str) -> None:
        await self.trigger(name)

    async def stop(self) -> None:
        pending = [*self._timers, *self._ticks]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._timers.clear()
        self._ticks.clear()

    async def _timer(self, job: PeriodicJob) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while True:
            self.trigger(job.name)
            await asyncio.sleep(job.interval)

    async def _run(self, job: PeriodicJob) -> None:
        while True:
            job.pending = False
            job.runs += 1
            try:
                await job.action()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled job %s failed", job.name)
            if not job.pending:
                return
            logger.debug("Running queued %s tick", job.name)
