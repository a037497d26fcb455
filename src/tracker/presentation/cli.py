"""Command line watcher for long-running server tasks."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import typer
from rich.console import Console

from src.setup.app_config import build_snapshot_fetcher, configure_di
from src.setup.logging_config import configure_logging
from src.setup.tracker_config import TrackerSettings, get_tracker_settings
from src.tracker.application.polling import TaskPoller
from src.tracker.application.services import TaskTracker
from src.tracker.domain.events.task_event import TaskEvent
from src.tracker.domain.exceptions import TaskTrackerError, TaskWatchTimeoutError
from src.tracker.domain.models.task import Task
from src.tracker.domain.models.task_state import TaskState

app = typer.Typer(help="Track server-side tasks until they finish")
console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2

_STATUS_STYLE = {
    TaskState.PENDING: "dim",
    TaskState.RUNNING: "cyan",
    TaskState.COMPLETED: "bold green",
    TaskState.FAILED: "bold red",
}


def render(task: Task) -> None:
    style = _STATUS_STYLE[task.status]
    line = f"[{style}]{task.status.value:>9}[/] {task.progress:>3}%  {task.id}"
    if task.message:
        line += f"  {task.message}"
    if task.error:
        line += f"  [red]{task.error}[/]"
    console.print(line, highlight=False)


class WatchSession:
    """Collects terminal outcomes for a fixed set of task ids."""

    def __init__(self, task_ids: list[str]) -> None:
        self.pending = set(task_ids)
        self.outcomes: dict[str, TaskState] = {}
        self.finished = asyncio.Event()

    def settle(self, task: Task) -> None:
        if task.id not in self.pending:
            return
        render(task)
        self.pending.discard(task.id)
        self.outcomes[task.id] = task.status
        if not self.pending:
            self.finished.set()

    def on_update(self, event: TaskEvent) -> None:
        if not event.task.is_terminal:
            render(event.task)

    @property
    def exit_code(self) -> int:
        if any(state == TaskState.FAILED for state in self.outcomes.values()):
            return EXIT_FAILED
        return EXIT_OK


async def _precheck(settings: TrackerSettings, session: WatchSession) -> None:
    # Batch subscriptions get no initial snapshot; settle finished ids up front.
    fetcher = build_snapshot_fetcher(settings)
    try:
        for task_id in list(session.pending):
            try:
                task = await fetcher.fetch(task_id)
            except TaskTrackerError as exc:
                console.print(f"[yellow]could not fetch {task_id}: {exc}[/]")
                continue
            if task.is_terminal:
                session.settle(task)
    finally:
        await fetcher.close()


async def watch_tasks(task_ids: list[str], settings: TrackerSettings, timeout: float | None) -> int:
    session = WatchSession(task_ids)
    async with TaskTracker(settings=settings) as tracker:
        tracker.set_listeners(
            on_update=session.on_update,
            on_complete=session.settle,
            on_error=session.settle,
        )
        if len(session.pending) == 1:
            await tracker.subscribe(next(iter(session.pending)))
        else:
            await _precheck(settings, session)
            if session.pending:
                await tracker.subscribe_batch([t for t in task_ids if t in session.pending])
        if session.pending:
            try:
                await asyncio.wait_for(session.finished.wait(), timeout)
            except TimeoutError:
                console.print(f"[yellow]timed out waiting for {', '.join(sorted(session.pending))}[/]")
                return EXIT_TIMEOUT
    return session.exit_code


async def poll_tasks(
    task_ids: list[str], settings: TrackerSettings, interval_ms: int, timeout: float | None
) -> int:
    fetcher = build_snapshot_fetcher(settings)
    poller = TaskPoller(fetcher, interval_ms)
    session = WatchSession(task_ids)
    try:
        results = await asyncio.gather(
            *(poller.poll_until_terminal(t, render, timeout=timeout) for t in session.pending),
            return_exceptions=True,
        )
    finally:
        await fetcher.close()
    timed_out = False
    for result in results:
        if isinstance(result, TaskWatchTimeoutError):
            console.print(f"[yellow]{result}[/]")
            timed_out = True
        elif isinstance(result, BaseException):
            raise result
        else:
            session.settle(result)
    if timed_out:
        return EXIT_TIMEOUT
    return session.exit_code


@app.callback()
def cli() -> None:
    """Track server-side tasks until they finish."""


@app.command()
def watch(
    task_ids: List[str] = typer.Argument(..., help="Task ids to watch"),
    api_url: Optional[str] = typer.Option(None, help="Base URL of the task server"),
    poll_only: bool = typer.Option(False, help="Skip the push channel and poll over HTTP"),
    interval_ms: int = typer.Option(1000, help="Polling interval for --poll-only"),
    timeout: Optional[float] = typer.Option(None, help="Give up after this many seconds"),
    log_level: Optional[str] = typer.Option(None, help="Log level (defaults to LOG_LEVEL)"),
) -> None:
    """Follow tasks until every one of them completes or fails."""
    settings = get_tracker_settings()
    if api_url:
        settings = settings.model_copy(update={"API_URL": api_url})
    configure_logging(log_level or settings.LOG_LEVEL)

    if poll_only:
        code = asyncio.run(poll_tasks(task_ids, settings, interval_ms, timeout))
    else:
        configure_di(settings)
        code = asyncio.run(watch_tasks(task_ids, settings, timeout))
    raise typer.Exit(code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
