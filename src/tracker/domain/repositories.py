from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from src.tracker.domain.models.task import Task

RawEventHandler = Callable[[dict[str, Any]], Awaitable[None]]
DisconnectHandler = Callable[[str], Awaitable[None]]


class SnapshotRepository(Protocol):
    """Repository contract for point lookups of task snapshots."""

    async def fetch(self, task_id: str) -> Task:
        """Return the current snapshot of ``task_id``.

        Raises ``TaskNotFoundError`` for unknown ids and ``SnapshotFetchError``
        for any transport or decoding failure.
        """

    async def close(self) -> None:
        """Release the underlying client."""


class PushChannel(Protocol):
    """Contract for a persistent push connection delivering ``task:event`` messages."""

    @property
    def connected(self) -> bool:
        """Whether the connection is currently established."""

    @property
    def sid(self) -> str | None:
        """Session id assigned by the server while connected."""

    def set_handlers(
        self,
        *,
        on_event: RawEventHandler,
        on_disconnect: DisconnectHandler,
    ) -> None:
        """Register the callbacks for incoming events and unexpected drops."""

    async def connect(self) -> None:
        """Open the connection. Raises ``ChannelConnectError`` on failure."""

    async def disconnect(self) -> None:
        """Close the connection without reporting it as an unexpected drop."""

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        """Send a client-to-server operation."""
