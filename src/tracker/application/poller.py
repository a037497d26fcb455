from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from src.tracker.application.backoff import (
    BASE_POLL_INTERVAL_MS,
    MAX_POLL_ATTEMPT,
    MAX_POLL_INTERVAL_MS,
    poll_interval,
)
from src.tracker.application.reconciler import EventReconciler
from src.tracker.application.registry import SubscriptionRegistry
from src.tracker.application.timers import ScheduledTask
from src.tracker.domain.events.task_event import TaskEvent
from src.tracker.domain.exceptions import TaskNotFoundError, TaskTrackerError
from src.tracker.domain.models.task import Task
from src.tracker.domain.repositories import SnapshotRepository

logger = logging.getLogger(__name__)


class PollingFallbackEngine:
    """Polls snapshots of every active subscription while the push channel is down."""

    def __init__(
        self,
        fetcher: SnapshotRepository,
        registry: SubscriptionRegistry,
        reconciler: EventReconciler,
        *,
        base_interval_ms: int = BASE_POLL_INTERVAL_MS,
        max_interval_ms: int = MAX_POLL_INTERVAL_MS,
        max_attempt: int = MAX_POLL_ATTEMPT,
    ) -> None:
        self._fetcher = fetcher
        self._registry = registry
        self._reconciler = reconciler
        self._base_interval_ms = base_interval_ms
        self._max_interval_ms = max_interval_ms
        self._max_attempt = max_attempt
        self._attempt = 0
        self._running = False
        self._timer = ScheduledTask("poll")
        self._inflight: dict[str, asyncio.Task[Task]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def attempt(self) -> int:
        return self._attempt

    def start(self) -> None:
        if self._running:
            return
        logger.info("Starting HTTP polling fallback")
        self._running = True
        self._attempt = 0
        self._schedule()

    def stop(self) -> None:
        if self._running:
            logger.info("Stopping HTTP polling fallback")
        self._running = False
        self._attempt = 0
        self._timer.cancel()
        self.release(list(self._inflight))

    def release(self, task_ids: Iterable[str]) -> None:
        """Cancel in-flight fetches for ids that are no longer of interest."""
        for task_id in task_ids:
            fetch = self._inflight.pop(task_id, None)
            if fetch is not None and not fetch.done():
                fetch.cancel()

    def _schedule(self) -> None:
        interval = poll_interval(self._attempt, self._base_interval_ms, self._max_interval_ms)
        logger.debug("Next poll scheduled", extra={"interval_ms": interval, "attempt": self._attempt})
        self._timer.schedule(interval, self._cycle)

    async def _cycle(self) -> None:
        task_ids = self._registry.active_ids()
        if not task_ids:
            logger.info("No active tasks to poll, stopping")
            self.stop()
            return

        fetches = [self._track(task_id) for task_id in task_ids]
        try:
            results = await asyncio.gather(*fetches, return_exceptions=True)
        finally:
            for task_id in task_ids:
                self._inflight.pop(task_id, None)

        for task_id, result in zip(task_ids, results):
            if isinstance(result, BaseException):
                self._log_failure(task_id, result)
                continue
            # Released while the fetch was in flight.
            if not self._registry.is_tracked(task_id) or self._registry.is_terminal(task_id):
                continue
            event = TaskEvent.from_snapshot(result, self._reconciler.previous_status(task_id))
            await self._reconciler.apply(event)

        if not self._running:
            return
        if not self._registry.active_ids():
            logger.info("All polled tasks settled, stopping")
            self.stop()
            return
        if self._attempt < self._max_attempt:
            self._attempt += 1
        self._schedule()

    def _track(self, task_id: str) -> asyncio.Task[Task]:
        fetch = asyncio.ensure_future(self._fetcher.fetch(task_id))
        self._inflight[task_id] = fetch
        return fetch

    @staticmethod
    def _log_failure(task_id: str, exc: BaseException) -> None:
        if isinstance(exc, asyncio.CancelledError):
            return
        if isinstance(exc, TaskNotFoundError):
            logger.debug("Polled task not found", extra={"task_id": task_id})
        elif isinstance(exc, TaskTrackerError):
            logger.warning("Error polling task", extra={"task_id": task_id, "error": str(exc)})
        else:
            logger.error("Unexpected error polling task", exc_info=exc, extra={"task_id": task_id})
