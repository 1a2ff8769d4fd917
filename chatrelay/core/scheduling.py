"""Named, cancellable timers owned by the lifecycle manager."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

from chatrelay.logging_config import get_logger

logger: Any = get_logger(__name__)

Callback = Callable[[], Awaitable[None] | None]


class ScheduledTask:
    """A single timer slot: at most one pending run at a time.

    ``arm`` replaces whatever was pending. With ``interval`` the callback
    repeats until ``disarm``; otherwise it runs once.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, delay: float, callback: Callback, *, interval: float | None = None) -> None:
        self.disarm()
        self._task = asyncio.create_task(
            self._run(delay, callback, interval), name=f"scheduled:{self.name}"
        )

    def disarm(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # Never cancel the running task from inside its own callback
        if task is asyncio.current_task():
            return
        task.cancel()

    async def wait_disarmed(self) -> None:
        """Cancel and wait until the pending run is gone (shutdown)."""
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self, delay: float, callback: Callback, interval: float | None) -> None:
        await asyncio.sleep(delay)
        while True:
            try:
                res = callback()
                if asyncio.iscoroutine(res):
                    await res
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Scheduled task {self.name} failed: {e}")
            if interval is None:
                return
            await asyncio.sleep(interval)
