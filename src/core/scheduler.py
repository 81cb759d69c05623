"""Deferred and periodic jobs on the running asyncio loop.

One-shot tasks have a firing time and no cancel handle: once scheduled, a
deferred deletion or reconnect always runs unless the process shuts down.
Periodic jobs are driven from here rather than by the components they
maintain, so a strategy never schedules its own cleanup.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

LOGGER = logging.getLogger(__name__)

Callback = Callable[[], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class ScheduledTask:
    """Record of a one-shot job: its name, delay and loop-clock firing time."""

    name: str
    delay: float
    fire_at: float


class TaskScheduler:
    """Run callbacks later on the current event loop."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER
        self._one_shot: set[asyncio.Task] = set()
        self._periodic: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._one_shot)

    def call_later(self, delay: float, callback: Callback, name: Optional[str] = None) -> ScheduledTask:
        """Run ``callback`` once, ``delay`` seconds from now."""

        if self._closed:
            raise RuntimeError("Scheduler is closed")
        loop = asyncio.get_running_loop()
        label = name or getattr(callback, "__name__", "deferred")
        delay = max(0.0, float(delay))
        task = loop.create_task(self._run_later(delay, callback, label), name=label)
        self._one_shot.add(task)
        task.add_done_callback(self._one_shot.discard)
        return ScheduledTask(name=label, delay=delay, fire_at=loop.time() + delay)

    def every(self, interval: float, callback: Callback, name: Optional[str] = None) -> None:
        """Run ``callback`` every ``interval`` seconds until the scheduler closes."""

        if self._closed:
            raise RuntimeError("Scheduler is closed")
        if interval <= 0:
            raise ValueError("interval must be positive")
        label = name or getattr(callback, "__name__", "periodic")
        task = asyncio.get_running_loop().create_task(self._run_every(interval, callback, label), name=label)
        self._periodic.add(task)
        task.add_done_callback(self._periodic.discard)

    async def drain(self) -> None:
        """Wait until every one-shot task scheduled so far has finished."""

        while self._one_shot:
            await asyncio.gather(*list(self._one_shot), return_exceptions=True)

    async def close(self) -> None:
        """Cancel all outstanding work. Used only at process shutdown."""

        self._closed = True
        # Shutdown may itself run inside a scheduled job (a reconnect that
        # gave up); that job finishes normally instead of cancelling itself.
        current = asyncio.current_task()
        tasks = [task for task in self._one_shot | self._periodic if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_later(self, delay: float, callback: Callback, label: str) -> None:
        await asyncio.sleep(delay)
        await self._invoke(callback, label)

    async def _run_every(self, interval: float, callback: Callback, label: str) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._invoke(callback, label)

    async def _invoke(self, callback: Callback, label: str) -> None:
        try:
            result = callback()
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("Scheduled job %s failed", label)
