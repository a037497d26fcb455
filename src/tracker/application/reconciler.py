from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from src.tracker.application.registry import SubscriptionRegistry
from src.tracker.domain.events.task_event import TaskEvent
from src.tracker.domain.models.task import Task
from src.tracker.domain.models.task_state import TaskState

logger = logging.getLogger(__name__)

TaskCallback = Callable[[Task], Awaitable[None] | None]
EventCallback = Callable[[TaskEvent], Awaitable[None] | None]


@dataclass(slots=True)
class TaskListeners:
    """Caller callbacks, owned by the tracker and swapped through a setter."""

    on_update: EventCallback | None = None
    on_complete: TaskCallback | None = None
    on_error: TaskCallback | None = None


class EventReconciler:
    """Merges events from every transport into the exposed state.

    Snapshots are applied as whole replacements, so duplicates and
    out-of-order deliveries across transports are harmless. Terminal callbacks
    fire at most once per subscribe lifecycle; the registry's terminal set is
    what enforces it.
    """

    def __init__(self, registry: SubscriptionRegistry, listeners: TaskListeners | None = None) -> None:
        self._registry = registry
        self._listeners = listeners or TaskListeners()
        self._task: Task | None = None
        self._tasks: dict[str, Task] = {}

    @property
    def task(self) -> Task | None:
        return self._task

    @property
    def tasks(self) -> Mapping[str, Task]:
        return MappingProxyType(self._tasks)

    def previous_status(self, task_id: str) -> TaskState | None:
        if self._task is not None and self._task.id == task_id:
            return self._task.status
        known = self._tasks.get(task_id)
        return known.status if known is not None else None

    def clear_task(self) -> None:
        self._task = None

    def clear_tasks(self) -> None:
        self._tasks = {}

    async def apply(self, event: TaskEvent) -> None:
        task = event.task
        logger.debug(
            "Applying task event",
            extra={"task_id": task.id, "event": event.event.value, "status": task.status.value},
        )
        await self._call(self._listeners.on_update, event)

        if self._registry.is_current(task.id):
            self._task = task
        if self._registry.in_batch(task.id):
            self._tasks = {**self._tasks, task.id: task}

        if not task.is_terminal or not self._registry.is_tracked(task.id):
            return
        if not self._registry.claim_terminal(task.id):
            return
        if task.status == TaskState.COMPLETED:
            logger.info("Task completed", extra={"task_id": task.id})
            await self._call(self._listeners.on_complete, task)
        else:
            logger.info("Task failed", extra={"task_id": task.id, "error": task.error})
            await self._call(self._listeners.on_error, task)

    async def _call(self, callback: Callable[[Any], Any] | None, argument: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(argument)
            if inspect.isawaitable(result):
                await result
        except Exception:
            name = getattr(callback, "__name__", repr(callback))
            logger.exception("Task listener raised", extra={"listener": name})
