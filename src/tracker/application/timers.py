from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class ScheduledTask:
    """A named, cancellable one-shot timer backed by a single asyncio task.

    Scheduling again replaces the pending run. A callback may reschedule its own
    timer; the running task is left alone and the new run is queued next to it.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay_ms: int, callback: TimerCallback) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self._run(delay_ms, callback), name=self._name
        )

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    async def _run(self, delay_ms: int, callback: TimerCallback) -> None:
        await asyncio.sleep(max(0, delay_ms) / 1000)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled callback failed", extra={"timer": self._name})
        finally:
            if self._task is asyncio.current_task():
                self._task = None
