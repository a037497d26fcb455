from src.tracker.domain.models.connection_state import ConnectionState
from src.tracker.domain.models.task import Task
from src.tracker.domain.models.task_state import TERMINAL_STATES, TaskState
from src.tracker.domain.models.task_type import TaskType

__all__ = [
    "Task",
    "TaskState",
    "TaskType",
    "ConnectionState",
    "TERMINAL_STATES",
]
