from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.tracker.domain.models.task_state import TERMINAL_STATES, TaskState
from src.tracker.domain.models.task_type import TaskType


class Task(BaseModel):
    """Immutable snapshot of a server-side task.

    Every update replaces the whole snapshot; fields are never patched in place.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    id: str = Field(description="Unique task identifier.")
    type: TaskType = Field(default=TaskType.GENERIC, description="Kind of operation.")
    status: TaskState = Field(description="Current lifecycle state of the task.")
    progress: int = Field(default=0, description="Progress percentage, 0..100.")
    message: str = Field(default="", description="Human readable status message.")
    result: Any | None = Field(default=None, description="Result payload, if any.")
    error: str | None = Field(default=None, description="Error text for failed tasks.")
    created_at: datetime | None = Field(default=None, description="When the task was created.")
    started_at: datetime | None = Field(default=None, description="When the task started running.")
    completed_at: datetime | None = Field(
        default=None, description="When the task reached a terminal state."
    )

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in {t.value for t in TaskType}:
            return TaskType.GENERIC
        return value

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> Any:
        # Not monotonic on the server side; only the range is enforced.
        if value is None:
            return 0
        if isinstance(value, (int, float)):
            return max(0, min(100, int(value)))
        return value

    @field_validator("message", mode="before")
    @classmethod
    def _default_message(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES
