# src/flowbridge/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the HTTP transport and local storage swappable and makes testing easier.
"""

from typing import Any, Callable, Protocol

from ..tasks.task_models import Label, Task, TaskDraft, TaskStatus

Clock = Callable[[], float]
# Wall-clock epoch seconds (time.time-compatible).

JsonDocument = dict[str, Any]


class DocumentStorage(Protocol):
    """
    Durable key-less JSON document (one file, one dict).

    load() must return {} when nothing was saved yet or the document is unreadable.
    """

    def load(self) -> JsonDocument: ...
    def save(self, data: JsonDocument) -> None: ...


class TaskGateway(Protocol):
    """
    Remote CRUD contract for tasks.

    Every method raises SyncFailure on any transport/server error.
    Mutations must be awaited before a following fetch_all().
    """

    async def fetch_all(self) -> list[Task]: ...
    async def fetch_labels(self) -> list[Label]: ...
    async def create(self, draft: TaskDraft) -> Task: ...
    async def update(self, task_id: int, fields: dict[str, Any]) -> Task | None: ...
    async def update_status(self, task_id: int, status: TaskStatus) -> None: ...
    async def update_archived(self, task_id: int, archived: bool) -> None: ...
    async def update_time_spent(self, task_id: int, seconds: int) -> None: ...
    async def add_comment(self, task_id: int, text: str) -> None: ...
    async def toggle_step(self, task_id: int, step_index: int) -> None: ...
    async def delete(self, task_id: int) -> None: ...
