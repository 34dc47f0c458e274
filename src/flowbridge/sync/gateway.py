# src/flowbridge/sync/gateway.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import SyncFailure
from ..tasks.task_models import Label, Task, TaskDraft, TaskStatus

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"description", "details", "due_date", "labels", "steps"})


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


class SyncGateway:
    """
    JSON-over-HTTP client for the task server.

    Contract:
    - every failure (network, non-2xx, undecodable body) raises SyncFailure;
    - no retries here: retry policy belongs to the caller/transport;
    - callers await a mutation before issuing fetch_all(), otherwise the
      snapshot may predate the mutation.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        connect_timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None:
            client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                timeout=_make_timeout(connect_timeout_seconds, timeout_seconds),
                transport=transport,
                headers={"Accept": "application/json"},
            )
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SyncGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- low-level ----

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json_body: Any = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=json_body)
        except httpx.HTTPError as e:
            logger.warning("%s: transport error %s", operation, e.__class__.__name__)
            raise SyncFailure(operation, str(e) or e.__class__.__name__) from e

        if resp.is_error:
            body = resp.text.strip()[:200]
            logger.warning("%s: HTTP %s %s", operation, resp.status_code, body)
            raise SyncFailure(operation, body or resp.reason_phrase, status_code=resp.status_code)

        logger.debug("%s: HTTP %s", operation, resp.status_code)
        return resp

    @staticmethod
    def _json(operation: str, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise SyncFailure(operation, "response is not valid JSON", status_code=resp.status_code) from e

    @staticmethod
    def _decode_task(operation: str, data: Any) -> Task:
        if not isinstance(data, dict):
            raise SyncFailure(operation, f"expected a task object, got {type(data).__name__}")
        try:
            return Task.from_dict(data)
        except (TypeError, ValueError) as e:
            raise SyncFailure(operation, str(e)) from e

    # ---- reads ----

    async def fetch_all(self) -> list[Task]:
        op = "fetch_all"
        data = self._json(op, await self._request(op, "GET", "/api/tasks"))
        if not isinstance(data, list):
            raise SyncFailure(op, f"expected a list, got {type(data).__name__}")
        return [self._decode_task(op, item) for item in data]

    async def fetch_labels(self) -> list[Label]:
        op = "fetch_labels"
        data = self._json(op, await self._request(op, "GET", "/api/labels"))
        if not isinstance(data, list):
            raise SyncFailure(op, f"expected a list, got {type(data).__name__}")
        return [Label.from_dict(item) for item in data if isinstance(item, dict)]

    # ---- mutations ----

    async def create(self, draft: TaskDraft) -> Task:
        op = "create"
        resp = await self._request(op, "POST", "/api/tasks", json_body=draft.to_dict())
        task = self._decode_task(op, self._json(op, resp))
        logger.info("Task created id=%s", task.id)
        return task

    async def update(self, task_id: int, fields: dict[str, Any]) -> Task | None:
        """
        Partial update. Returns the updated task when the server echoes it,
        None when it answers with an empty body.
        """
        op = "update"
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated through update(): {sorted(unknown)}")

        resp = await self._request(op, "PUT", f"/api/tasks/{int(task_id)}", json_body=fields)
        if not resp.content.strip():
            return None
        return self._decode_task(op, self._json(op, resp))

    async def update_status(self, task_id: int, status: TaskStatus) -> None:
        await self._request(
            "update_status", "PUT", f"/api/tasks/{int(task_id)}/status", json_body={"status": status.value}
        )

    async def update_archived(self, task_id: int, archived: bool) -> None:
        await self._request(
            "update_archived", "PUT", f"/api/tasks/{int(task_id)}/archive", json_body={"archived": bool(archived)}
        )

    async def update_time_spent(self, task_id: int, seconds: int) -> None:
        await self._request(
            "update_time_spent", "PUT", f"/api/tasks/{int(task_id)}/time", json_body={"time_spent": int(seconds)}
        )

    async def add_comment(self, task_id: int, text: str) -> None:
        await self._request(
            "add_comment", "POST", f"/api/tasks/{int(task_id)}/comments", json_body={"text": text}
        )

    async def toggle_step(self, task_id: int, step_index: int) -> None:
        await self._request(
            "toggle_step", "POST", f"/api/tasks/{int(task_id)}/toggle-step", json_body={"step_index": int(step_index)}
        )

    async def delete(self, task_id: int) -> None:
        await self._request("delete", "DELETE", f"/api/tasks/{int(task_id)}")
        logger.info("Task deleted id=%s", task_id)
