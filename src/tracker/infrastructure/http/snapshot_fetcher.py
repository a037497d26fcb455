from __future__ import annotations

import logging
from json import JSONDecodeError
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from src.tracker.domain.exceptions import SnapshotFetchError, TaskNotFoundError
from src.tracker.domain.models.task import Task

logger = logging.getLogger(__name__)


class HttpSnapshotFetcher:
    """Point lookups of task snapshots over ``GET {base_url}{tasks_path}/{id}``."""

    def __init__(
        self,
        base_url: str,
        *,
        tasks_path: str = "/api/tasks",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._tasks_path = "/" + tasks_path.strip("/")
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def fetch(self, task_id: str) -> Task:
        url = f"{self._tasks_path}/{quote(task_id, safe='')}"
        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise SnapshotFetchError(task_id, str(exc) or type(exc).__name__) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise TaskNotFoundError(task_id)
        if response.is_error:
            raise SnapshotFetchError(task_id, f"HTTP {response.status_code}: {_error_message(response)}")

        try:
            body = response.json()
        except (JSONDecodeError, UnicodeDecodeError) as exc:
            raise SnapshotFetchError(task_id, "Invalid JSON body") from exc

        data = _unwrap(body)
        if data is None:
            raise SnapshotFetchError(task_id, _error_message(response))
        try:
            return Task.model_validate(data)
        except ValidationError as exc:
            raise SnapshotFetchError(task_id, "Invalid task schema") from exc

    async def close(self) -> None:
        await self._client.aclose()


def _unwrap(body: Any) -> Any:
    # The backend answers {"success": true, "data": {...}}; bare tasks are accepted too.
    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            return None
        return body.get("data")
    return body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "request failed"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or response.reason_phrase)
    return response.reason_phrase or "request failed"
