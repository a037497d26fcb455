import pytest

from src.tracker.application.polling import TaskPoller
from src.tracker.domain.exceptions import SnapshotFetchError, TaskWatchTimeoutError
from src.tracker.domain.models.task_state import TaskState

from conftest import StubSnapshotRepository, make_task


class ScriptedFetcher(StubSnapshotRepository):
    """Returns a fixed sequence of snapshots, repeating the last one."""

    def __init__(self, script) -> None:
        super().__init__()
        self.script = list(script)

    async def fetch(self, task_id: str):
        self.calls.append(task_id)
        value = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.mark.asyncio
async def test_poll_until_terminal_reports_each_snapshot() -> None:
    fetcher = ScriptedFetcher(
        [
            make_task("t1", TaskState.PENDING, 0),
            SnapshotFetchError("t1", "HTTP 502"),
            make_task("t1", TaskState.RUNNING, 50),
            make_task("t1", TaskState.COMPLETED, 100),
        ]
    )
    seen = []

    result = await TaskPoller(fetcher, interval_ms=1).poll_until_terminal("t1", lambda t: seen.append(t.progress))

    assert result.status == TaskState.COMPLETED
    assert seen == [0, 50, 100]
    assert len(fetcher.calls) == 4


@pytest.mark.asyncio
async def test_poll_until_terminal_times_out() -> None:
    fetcher = ScriptedFetcher([make_task("t1", TaskState.RUNNING)])

    with pytest.raises(TaskWatchTimeoutError) as exc_info:
        await TaskPoller(fetcher, interval_ms=1).poll_until_terminal("t1", timeout=0.02)

    assert exc_info.value.task_id == "t1"
    assert len(fetcher.calls) >= 2
