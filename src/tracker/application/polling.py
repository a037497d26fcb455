from __future__ import annotations

import asyncio
import inspect
import logging

from src.tracker.application.reconciler import TaskCallback
from src.tracker.domain.exceptions import TaskTrackerError, TaskWatchTimeoutError
from src.tracker.domain.models.task import Task
from src.tracker.domain.repositories import SnapshotRepository

logger = logging.getLogger(__name__)


class TaskPoller:
    """Fixed-interval polling of one task, without any push channel."""

    def __init__(self, fetcher: SnapshotRepository, interval_ms: int = 1000) -> None:
        self._fetcher = fetcher
        self._interval_ms = max(1, interval_ms)

    async def poll_until_terminal(
        self,
        task_id: str,
        on_update: TaskCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> Task:
        """Poll right away, then every interval, and return the terminal snapshot."""
        try:
            return await asyncio.wait_for(self._poll(task_id, on_update), timeout)
        except TimeoutError as exc:
            raise TaskWatchTimeoutError(task_id, timeout or 0) from exc

    async def _poll(self, task_id: str, on_update: TaskCallback | None) -> Task:
        while True:
            try:
                task = await self._fetcher.fetch(task_id)
            except TaskTrackerError as exc:
                logger.warning("Error polling task", extra={"task_id": task_id, "error": str(exc)})
            else:
                if on_update is not None:
                    result = on_update(task)
                    if inspect.isawaitable(result):
                        await result
                if task.is_terminal:
                    return task
            await asyncio.sleep(self._interval_ms / 1000)
