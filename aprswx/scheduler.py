"""Owned timer handles.

Every timer in the relay lives in a ScheduledTask so that starting,
replacing and cancelling it is an explicit call instead of a field that
gets overwritten.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from aprswx.constants import TICK_INTERVAL, TICK_MAX_DRIFT
from aprswx.utils import print_debug, print_error

Callback = Callable[[], Union[None, Awaitable[None]]]


async def _call(func: Callback):
    result = func()
    if inspect.isawaitable(result):
        await result


class ScheduledTask:
    """A cancellable background task with a name.

    Example:
        task = ScheduledTask.delayed(10, connection.connect, name="reconnect")
        ...
        await task.cancel()
    """

    def __init__(self, coro: Awaitable, name: str = "task"):
        self.name = name
        self._task: asyncio.Task = asyncio.ensure_future(coro)

    @classmethod
    def delayed(cls, delay: float, func: Callback, name: str = "delayed") -> "ScheduledTask":
        """Run func once after delay seconds."""

        async def runner():
            await asyncio.sleep(delay)
            await _call(func)

        return cls(runner(), name=name)

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def task(self) -> asyncio.Task:
        return self._task

    def is_current(self) -> bool:
        """True when called from inside this task."""
        return asyncio.current_task() is self._task

    async def wait(self):
        """Wait for the task to finish and return its result."""
        return await self._task

    async def cancel(self):
        """Cancel the task and wait until it has stopped.

        Calling it from inside the task itself is a no-op: the task is
        already on its way out and finishes on its own.
        """
        if self._task.done() or self.is_current():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        print_debug(f"Cancelled {self.name}", level=6)


class MinuteTicker:
    """Calls a callback at the top of every minute.

    The first call waits for the next minute boundary. When a call fires
    TICK_MAX_DRIFT seconds or more past the boundary the loop is torn down
    and started again so later ticks line up with the clock.
    """

    def __init__(
        self,
        callback: Callable[[datetime], Union[None, Awaitable[None]]],
        interval: float = TICK_INTERVAL,
        clock: Callable[[], datetime] = None,
    ):
        self.callback = callback
        self.interval = interval
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.resyncs = 0
        self._handle: Optional[ScheduledTask] = None

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.done

    def start(self):
        """Start ticking (no-op when already running)."""
        if self.running:
            return
        self._handle = ScheduledTask(self._loop(), name="minute ticker")

    async def stop(self):
        """Stop ticking."""
        if self._handle is not None:
            await self._handle.cancel()
            self._handle = None

    def seconds_to_next_minute(self, now: Optional[datetime] = None) -> float:
        now = now or self.clock()
        return 60 - now.second - now.microsecond / 1_000_000

    async def _loop(self):
        await asyncio.sleep(self.seconds_to_next_minute())
        while True:
            now = self.clock()
            try:
                result = self.callback(now)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                print_error(f"Tick failed: {e}")

            if now.second >= TICK_MAX_DRIFT:
                print_debug(f"Tick drifted {now.second}s past the minute, re-syncing", level=3)
                self.resyncs += 1
                self._handle = ScheduledTask(self._loop(), name="minute ticker")
                return

            await asyncio.sleep(self.interval)
