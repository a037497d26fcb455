from __future__ import annotations

from collections.abc import Iterable


class SubscriptionRegistry:
    """Which task ids are of interest, and which have already been settled.

    Two modes coexist: one focused single subscription, replaced on every
    ``subscribe``, and an additive batch set. The terminal set holds ids whose
    terminal callback already fired or whose subscription was withdrawn; it is
    the only state shared by both transports.

    Release methods return only the ids that are no longer tracked by either
    mode, i.e. the ids that should be unsubscribed from the transport.
    """

    def __init__(self) -> None:
        self._current: str | None = None
        self._batch: dict[str, None] = {}
        self._terminal: set[str] = set()

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def batch(self) -> list[str]:
        return list(self._batch)

    def subscribe(self, task_id: str) -> str | None:
        """Make ``task_id`` the single subscription.

        Returns the replaced id when it is no longer tracked at all.
        """
        previous = self._current
        self._current = task_id
        self._terminal.discard(task_id)
        if previous is None or previous == task_id:
            return None
        return self._release(previous)

    def unsubscribe(self) -> str | None:
        previous, self._current = self._current, None
        if previous is None:
            return None
        return self._release(previous)

    def subscribe_batch(self, task_ids: Iterable[str]) -> list[str]:
        added: list[str] = []
        for task_id in task_ids:
            if task_id in added:
                continue
            self._batch[task_id] = None
            self._terminal.discard(task_id)
            added.append(task_id)
        return added

    def unsubscribe_batch(self) -> list[str]:
        members = list(self._batch)
        self._batch.clear()
        return [task_id for task_id in members if self._release(task_id) is not None]

    def clear(self) -> None:
        self._current = None
        self._batch.clear()
        self._terminal.clear()

    def is_current(self, task_id: str) -> bool:
        return self._current == task_id

    def in_batch(self, task_id: str) -> bool:
        return task_id in self._batch

    def is_tracked(self, task_id: str) -> bool:
        return self.is_current(task_id) or self.in_batch(task_id)

    def is_terminal(self, task_id: str) -> bool:
        return task_id in self._terminal

    def claim_terminal(self, task_id: str) -> bool:
        """Record ``task_id`` as settled; True only for the first claim."""
        if task_id in self._terminal:
            return False
        self._terminal.add(task_id)
        return True

    def active_ids(self) -> list[str]:
        """Tracked ids still awaiting a terminal status, without duplicates."""
        ids: dict[str, None] = {}
        if self._current is not None:
            ids[self._current] = None
        ids.update(self._batch)
        return [task_id for task_id in ids if task_id not in self._terminal]

    def _release(self, task_id: str) -> str | None:
        if self.is_tracked(task_id):
            return None
        # Withdrawn subscriptions are silenced as if they had settled.
        self._terminal.add(task_id)
        return task_id
