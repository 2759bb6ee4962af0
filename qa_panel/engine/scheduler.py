from __future__ import annotations

import asyncio
from typing import Callable, Protocol

from qa_panel.core.logger import get_logger

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_every(self, period_ms: int, callback: Callable[[], None], name: str = "") -> TimerHandle: ...

    def call_later(self, delay_ms: int, callback: Callable[[], None], name: str = "") -> TimerHandle: ...

    def cancel_all(self) -> None: ...

    @property
    def pending(self) -> int: ...


class AsyncioTimer:
    def __init__(self, task: asyncio.Task):
        self._task = task
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Timers on the running event loop.

    Callbacks are plain synchronous functions, so one firing always runs to
    completion before any other task on the loop is resumed.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def _spawn(self, coro, name: str) -> AsyncioTimer:
        task = asyncio.get_running_loop().create_task(coro, name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return AsyncioTimer(task)

    def call_every(self, period_ms: int, callback: Callable[[], None], name: str = "") -> AsyncioTimer:
        period = max(1, int(period_ms)) / 1000.0
        holder: dict[str, AsyncioTimer] = {}

        async def _loop() -> None:
            while True:
                await asyncio.sleep(period)
                try:
                    callback()
                except Exception:
                    logger.exception("scheduler.interval.error", timer=name)
                    return
                if holder["timer"].cancelled:
                    return

        timer = self._spawn(_loop(), name)
        holder["timer"] = timer
        return timer

    def call_later(self, delay_ms: int, callback: Callable[[], None], name: str = "") -> AsyncioTimer:
        delay = max(0, int(delay_ms)) / 1000.0

        async def _once() -> None:
            await asyncio.sleep(delay)
            try:
                callback()
            except Exception:
                logger.exception("scheduler.timeout.error", timer=name)

        return self._spawn(_once(), name)

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
