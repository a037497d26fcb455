from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Mapping
from types import TracebackType

import inject

from src.setup.tracker_config import TrackerSettings, get_tracker_settings
from src.tracker.application.channel_manager import PushChannelManager
from src.tracker.application.poller import PollingFallbackEngine
from src.tracker.application.reconciler import (
    EventCallback,
    EventReconciler,
    TaskCallback,
    TaskListeners,
)
from src.tracker.application.registry import SubscriptionRegistry
from src.tracker.domain.events.task_event import TaskEvent
from src.tracker.domain.exceptions import TaskTrackerError
from src.tracker.domain.models.connection_state import ConnectionState
from src.tracker.domain.models.task import Task
from src.tracker.domain.repositories import PushChannel, SnapshotRepository

logger = logging.getLogger(__name__)


class TaskTracker:
    """Tracks server-side tasks over the push channel, falling back to polling.

    Usage::

        async with TaskTracker() as tracker:
            tracker.set_listeners(on_complete=done, on_error=failed)
            await tracker.subscribe(task_id)
    """

    def __init__(
        self,
        fetcher: SnapshotRepository | None = None,
        channel: PushChannel | None = None,
        *,
        settings: TrackerSettings | None = None,
        listeners: TaskListeners | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or get_tracker_settings()
        self._fetcher = fetcher or inject.instance(SnapshotRepository)
        self._channel = channel or inject.instance(PushChannel)
        self._listeners = listeners or TaskListeners()
        self._registry = SubscriptionRegistry()
        self._reconciler = EventReconciler(self._registry, self._listeners)
        self._poller: PollingFallbackEngine | None = None
        if self._settings.ENABLE_FALLBACK:
            self._poller = PollingFallbackEngine(
                self._fetcher,
                self._registry,
                self._reconciler,
                base_interval_ms=self._settings.POLL_BASE_INTERVAL_MS,
                max_interval_ms=self._settings.POLL_MAX_INTERVAL_MS,
                max_attempt=self._settings.POLL_MAX_ATTEMPT,
            )
        self._channel_manager = PushChannelManager(
            self._channel,
            self._registry,
            self._reconciler,
            self._poller,
            auto_reconnect=self._settings.AUTO_RECONNECT,
            max_reconnect_attempts=self._settings.MAX_RECONNECT_ATTEMPTS,
            base_delay_ms=self._settings.RECONNECT_BASE_DELAY_MS,
            max_delay_ms=self._settings.RECONNECT_MAX_DELAY_MS,
            jitter_ms=self._settings.RECONNECT_JITTER_MS,
            rng=rng,
        )

    async def __aenter__(self) -> TaskTracker:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def task(self) -> Task | None:
        """Latest snapshot of the single subscription."""
        return self._reconciler.task

    @property
    def tasks(self) -> Mapping[str, Task]:
        """Latest snapshots of the batch subscriptions, keyed by task id."""
        return self._reconciler.tasks

    @property
    def is_connected(self) -> bool:
        return self._channel_manager.is_connected

    @property
    def socket_id(self) -> str | None:
        return self._channel_manager.sid

    @property
    def is_using_fallback(self) -> bool:
        return self._channel_manager.is_using_fallback

    @property
    def connection_state(self) -> ConnectionState:
        return self._channel_manager.state

    @property
    def listeners(self) -> TaskListeners:
        return self._listeners

    def set_listeners(
        self,
        *,
        on_update: EventCallback | None = None,
        on_complete: TaskCallback | None = None,
        on_error: TaskCallback | None = None,
    ) -> None:
        """Replace the callbacks in place; in-flight deliveries see the new ones."""
        self._listeners.on_update = on_update
        self._listeners.on_complete = on_complete
        self._listeners.on_error = on_error

    async def start(self) -> None:
        """Open the push channel. Failures are retried in the background."""
        await self._channel_manager.start()

    async def close(self) -> None:
        """Cancel every timer, stop polling and release the transports."""
        if self._poller is not None:
            self._poller.stop()
        try:
            await self._channel_manager.close()
        finally:
            await self._fetcher.close()

    async def subscribe(self, task_id: str) -> None:
        """Focus on ``task_id``, replacing the previous single subscription.

        The current snapshot is fetched first; a task that has already settled
        fires its callback right away and is never subscribed on the transport.
        """
        logger.info(
            "Subscribing to task",
            extra={
                "task_id": task_id,
                "connected": self.is_connected,
                "fallback": self.is_using_fallback,
            },
        )
        released = self._registry.subscribe(task_id)
        if released is not None:
            await self._release([released])
        self._reconciler.clear_task()

        snapshot: Task | None = None
        try:
            snapshot = await self._fetcher.fetch(task_id)
        except TaskTrackerError as exc:
            logger.warning(
                "Error fetching initial task state",
                extra={"task_id": task_id, "error": str(exc)},
            )

        if not self._registry.is_current(task_id):
            logger.debug("Subscription replaced while fetching", extra={"task_id": task_id})
            return
        if snapshot is not None:
            await self._reconciler.apply(TaskEvent.from_snapshot(snapshot))
            if snapshot.is_terminal:
                logger.info(
                    "Task already settled",
                    extra={"task_id": task_id, "status": snapshot.status.value},
                )
                return

        if self._channel_manager.is_connected:
            await self._channel_manager.subscribe(task_id)
        else:
            self._resume_polling()

    async def unsubscribe(self) -> None:
        task_id = self._registry.current
        if task_id is None:
            return
        logger.info("Unsubscribing from task", extra={"task_id": task_id})
        released = self._registry.unsubscribe()
        if released is not None:
            await self._release([released])
        self._reconciler.clear_task()

    async def subscribe_batch(self, task_ids: Iterable[str]) -> None:
        """Add ``task_ids`` to the batch set; existing members are kept."""
        added = self._registry.subscribe_batch(task_ids)
        logger.info(
            "Subscribing to batch",
            extra={
                "task_ids": added,
                "connected": self.is_connected,
                "fallback": self.is_using_fallback,
            },
        )
        if not added:
            return
        if self._channel_manager.is_connected:
            await self._channel_manager.subscribe_batch(added)
        else:
            self._resume_polling()

    async def unsubscribe_batch(self) -> None:
        if not self._registry.batch:
            return
        logger.info("Unsubscribing from batch", extra={"task_ids": self._registry.batch})
        released = self._registry.unsubscribe_batch()
        await self._release(released)
        self._reconciler.clear_tasks()

    async def reset(self) -> None:
        """Drop every subscription and all tracked state."""
        await self.unsubscribe()
        await self.unsubscribe_batch()
        if self._poller is not None:
            self._poller.stop()
        self._registry.clear()
        self._reconciler.clear_task()
        self._reconciler.clear_tasks()

    async def _release(self, task_ids: list[str]) -> None:
        if self._poller is not None:
            self._poller.release(task_ids)
        for task_id in task_ids:
            await self._channel_manager.unsubscribe(task_id)

    def _resume_polling(self) -> None:
        if self._poller is not None and self.is_using_fallback and not self._poller.is_running:
            self._poller.start()
