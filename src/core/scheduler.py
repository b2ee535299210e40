"""Periodic task scheduling.

Ingest, broadcast and purge run as independent asyncio tasks, each with its
own stop event. A failing tick is logged and the task simply waits for the next
one; nothing here ever brings the process down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from core.errors import NewsRelayError

LOGGER = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async job every ``interval`` seconds until stopped."""

    def __init__(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[object]],
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"{name}: interval must be positive")
        self.name = name
        self.interval = interval
        self._job = job
        self._run_immediately = run_immediately
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        if not self._run_immediately and await self._wait():
            return
        while not self._stop.is_set():
            await self._tick()
            if await self._wait():
                return

    async def _wait(self) -> bool:
        """Sleep one interval; return True if a stop was requested meanwhile."""

        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            await self._job()
        except NewsRelayError as exc:
            LOGGER.warning("%s tick failed: %s", self.name, exc)
        except Exception:
            LOGGER.exception("%s tick crashed", self.name)


class Scheduler:
    """Start a set of periodic tasks once and stop them together."""

    def __init__(self, tasks: Optional[List[PeriodicTask]] = None) -> None:
        self._tasks: List[PeriodicTask] = list(tasks or [])

    def add(self, task: PeriodicTask) -> None:
        self._tasks.append(task)

    def start(self) -> None:
        for task in self._tasks:
            LOGGER.info("Starting %s every %ss", task.name, task.interval)
            task.start()

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks))
        LOGGER.info("Scheduler stopped")
