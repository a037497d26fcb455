class TaskTrackerError(Exception):
    """Base class for errors raised by the task tracker."""


class TaskNotFoundError(TaskTrackerError):
    """Raised when a task identifier does not exist in the task backend."""
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class SnapshotFetchError(TaskTrackerError):
    """Raised when the current snapshot of a task could not be retrieved."""

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"Could not fetch task '{task_id}': {reason}")
        self.task_id = task_id
        self.reason = reason


class ChannelConnectError(TaskTrackerError):
    """Raised when the push channel cannot be established."""


class TaskWatchTimeoutError(TaskTrackerError):
    """Raised when a task did not reach a terminal state in time."""

    def __init__(self, task_id: str, timeout: float) -> None:
        super().__init__(f"Task '{task_id}' did not finish within {timeout:g}s.")
        self.task_id = task_id
        self.timeout = timeout
