from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from src.setup.tracker_config import TrackerSettings
from src.tracker.application.reconciler import TaskListeners
from src.tracker.domain.exceptions import ChannelConnectError, TaskNotFoundError
from src.tracker.domain.models.task import Task
from src.tracker.domain.models.task_state import TaskState
from src.tracker.domain.repositories import (
    DisconnectHandler,
    PushChannel,
    RawEventHandler,
    SnapshotRepository,
)


def make_task(
    task_id: str, status: TaskState | str = TaskState.RUNNING, progress: int = 50, **kwargs: Any
) -> Task:
    return Task(
        id=task_id,
        status=TaskState(status),
        progress=progress,
        message=kwargs.pop("message", f"{task_id} is {TaskState(status).value}"),
        **kwargs,
    )


def event_payload(task: Task, event: str | None = None) -> dict[str, Any]:
    """Wire-format ``task:event`` payload, as the backend emits it."""
    kind = event or {
        TaskState.COMPLETED: "COMPLETED",
        TaskState.FAILED: "FAILED",
        TaskState.RUNNING: "PROGRESS",
        TaskState.PENDING: "UPDATED",
    }[task.status]
    return {
        "event": kind,
        "task": task.model_dump(mode="json", by_alias=True),
        "timestamp": "2024-05-01T12:00:00.000Z",
    }


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class StubSnapshotRepository(SnapshotRepository):
    """In-memory snapshot lookups with optional per-id gates to hold fetches in flight."""

    def __init__(self, snapshots: dict[str, Task | Exception] | None = None) -> None:
        self.snapshots: dict[str, Task | Exception] = dict(snapshots or {})
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.closed = False

    def set(self, task: Task) -> None:
        self.snapshots[task.id] = task

    def gate(self, task_id: str) -> asyncio.Event:
        return self.gates.setdefault(task_id, asyncio.Event())

    def count(self, task_id: str) -> int:
        return self.calls.count(task_id)

    async def fetch(self, task_id: str) -> Task:
        self.calls.append(task_id)
        gate = self.gates.get(task_id)
        if gate is not None:
            await gate.wait()
        value = self.snapshots.get(task_id)
        if value is None:
            raise TaskNotFoundError(task_id)
        if isinstance(value, Exception):
            raise value
        return value

    async def close(self) -> None:
        self.closed = True


class StubPushChannel(PushChannel):
    """Push channel double: scripted connect failures, recorded emits, injectable events."""

    def __init__(self, *, fail_connects: int = 0, always_fail: bool = False) -> None:
        self.fail_connects = fail_connects
        self.always_fail = always_fail
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.emitted: list[tuple[str, dict[str, Any]]] = []
        self._connected = False
        self._on_event: RawEventHandler | None = None
        self._on_disconnect: DisconnectHandler | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def sid(self) -> str | None:
        return f"sid-{self.connect_calls}" if self._connected else None

    def set_handlers(self, *, on_event: RawEventHandler, on_disconnect: DisconnectHandler) -> None:
        self._on_event = on_event
        self._on_disconnect = on_disconnect

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.always_fail or self.connect_calls <= self.fail_connects:
            raise ChannelConnectError("connection refused")
        self._connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        self.emitted.append((event, data))

    def emitted_named(self, event: str) -> list[dict[str, Any]]:
        return [data for name, data in self.emitted if name == event]

    async def push(self, payload: dict[str, Any]) -> None:
        assert self._on_event is not None
        await self._on_event(payload)

    async def drop(self, reason: str = "transport close") -> None:
        self._connected = False
        assert self._on_disconnect is not None
        await self._on_disconnect(reason)


class RecordingListeners(TaskListeners):
    def __init__(self) -> None:
        super().__init__(on_update=self._update, on_complete=self._complete, on_error=self._error)
        self.updates: list[Any] = []
        self.completed: list[Task] = []
        self.failed: list[Task] = []

    def _update(self, event: Any) -> None:
        self.updates.append(event)

    def _complete(self, task: Task) -> None:
        self.completed.append(task)

    def _error(self, task: Task) -> None:
        self.failed.append(task)


@pytest.fixture
def fast_settings() -> TrackerSettings:
    """Tracker settings with millisecond delays and no jitter."""
    return TrackerSettings(
        API_URL="http://tasks.test",
        MAX_RECONNECT_ATTEMPTS=3,
        RECONNECT_BASE_DELAY_MS=1,
        RECONNECT_MAX_DELAY_MS=4,
        RECONNECT_JITTER_MS=0,
        POLL_BASE_INTERVAL_MS=1,
        POLL_MAX_INTERVAL_MS=4,
    )


@pytest.fixture
def fetcher() -> StubSnapshotRepository:
    return StubSnapshotRepository()


@pytest.fixture
def channel() -> StubPushChannel:
    return StubPushChannel()


@pytest.fixture
def listeners() -> RecordingListeners:
    return RecordingListeners()
