from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.tracker.domain.models.task import Task
from src.tracker.domain.models.task_state import TaskState


class TaskEventKind(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    PROGRESS = "PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TaskEventMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    previous_status: TaskState | None = Field(
        default=None, description="Status of the task before this event."
    )
    error_details: str | None = Field(default=None, description="Free-form error detail.")
    estimated_time_remaining: float | None = Field(
        default=None, description="Server estimate of the remaining time."
    )


class TaskEvent(BaseModel):
    """A task snapshot delivered by either the push channel or the poller.

    ``event`` is informational; terminality is decided by ``task.status``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    event: TaskEventKind = Field(description="Kind of the event.")
    task: Task = Field(description="Task snapshot at the time of the event.")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the event was produced."
    )
    meta: TaskEventMeta | None = Field(default=None, description="Optional event metadata.")

    @property
    def task_id(self) -> str:
        return self.task.id

    @classmethod
    def from_snapshot(cls, task: Task, previous_status: TaskState | None = None) -> TaskEvent:
        """Build a synthetic event for a snapshot obtained by a point lookup."""
        if task.status == TaskState.COMPLETED:
            kind = TaskEventKind.COMPLETED
        elif task.status == TaskState.FAILED:
            kind = TaskEventKind.FAILED
        elif task.status == TaskState.RUNNING and previous_status != TaskState.RUNNING:
            kind = TaskEventKind.PROGRESS
        else:
            kind = TaskEventKind.UPDATED
        return cls(
            event=kind,
            task=task,
            meta=TaskEventMeta(previous_status=previous_status),
        )
