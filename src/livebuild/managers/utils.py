# src/livebuild/managers/utils.py
"""
Small asyncio helpers shared by the accumulator timers and the pollers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set, Union

logger = logging.getLogger(__name__)

Tick = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """
    Run `tick` every `interval_seconds` on the running event loop.

    Exceptions raised by a tick are logged and the schedule carries on.
    `stop()` cancels the sleep between ticks; a tick that is already running
    is allowed to finish first.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        tick: Tick,
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.tick = tick
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._in_tick = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._stopping = True
        if not self._in_tick:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run_tick(self) -> None:
        self._in_tick = True
        try:
            result = self.tick()
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("periodic task %s: tick failed", self.name)
        finally:
            self._in_tick = False

    async def _loop(self) -> None:
        if self.run_immediately:
            await self._run_tick()
        while not self._stopping:
            await asyncio.sleep(self.interval_seconds)
            if self._stopping:
                break
            await self._run_tick()


def spawn(coro: Coroutine[Any, Any, Any], tasks: Set[asyncio.Task], *, what: str) -> asyncio.Task:
    """
    Start `coro` as a background task tracked in `tasks` until it finishes.
    An exception that escapes it is logged rather than left unretrieved.
    """
    task = asyncio.get_running_loop().create_task(coro)
    tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            logger.error("%s failed", what, exc_info=t.exception())

    task.add_done_callback(_done)
    return task


__all__ = ["PeriodicTask", "spawn"]
