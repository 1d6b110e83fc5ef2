from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class Timer:
    name: str
    interval: float
    job: Job


def next_deadline(previous: float, interval: float, now: float) -> float:
    """First tick after ``previous`` that is still in the future.

    Ticks that passed while a job was running are dropped, not replayed.
    """
    deadline = previous + interval
    if deadline > now:
        return deadline
    missed = math.floor((now - previous) / interval)
    return previous + (missed + 1) * interval


class SchedulerLoop:
    def __init__(
        self,
        timers: list[Timer],
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.timers = timers
        self._clock = clock
        self._sleep = sleep

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def run(self) -> None:
        tasks = [
            asyncio.create_task(self._run_timer(timer), name=f"timer:{timer.name}")
            for timer in self.timers
            if timer.interval > 0
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_timer(self, timer: Timer) -> None:
        deadline = self._now() + timer.interval
        while True:
            await self._sleep(max(deadline - self._now(), 0.0))
            await self.fire(timer)
            after = self._now()
            upcoming = next_deadline(deadline, timer.interval, after)
            skipped = round((upcoming - deadline) / timer.interval) - 1
            if skipped > 0:
                logger.warning("Timer %s skipped %d missed tick(s)", timer.name, skipped)
            deadline = upcoming

    async def fire(self, timer: Timer) -> None:
        try:
            await timer.job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled job %s failed", timer.name)
