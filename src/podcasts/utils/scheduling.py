"""Clock and timer abstractions.

Components that depend on wall-clock time or timers receive a ``Clock``
and a ``Scheduler`` instead of calling ``time`` or ``asyncio`` directly,
so tests can drive them with fakes.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None] | None]


class Clock:
    """Wall clock returning epoch milliseconds."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class TimerHandle:
    """Handle for a scheduled callback; ``cancel()`` stops it."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        self._task.cancel()


class Scheduler:
    """asyncio-backed timers owned by the application lifecycle.

    Every timer runs as a task tracked by the scheduler; ``close()`` cancels
    whatever is still pending. Callbacks may be plain functions or
    coroutine functions. Exceptions raised by a callback are logged and do
    not stop a repeating timer.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""

        async def runner() -> None:
            await asyncio.sleep(delay)
            await self._invoke(callback)

        return self._track(runner())

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled."""

        async def runner() -> None:
            while True:
                await asyncio.sleep(interval)
                await self._invoke(callback)

        return self._track(runner())

    def close(self) -> None:
        """Cancel all pending timers."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _track(self, coro: Awaitable[None]) -> TimerHandle:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return TimerHandle(task)

    async def _invoke(self, callback: Callback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduled callback failed: {e}", exc_info=True)
