# src/flowbridge/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from ..core.errors import NotFound
from .task_models import Label, Step, Task, TaskStatus

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    UPSERT = "upsert"
    REMOVE = "remove"
    RELOAD = "reload"
    LABELS = "labels"


@dataclass(slots=True, frozen=True)
class StoreChange:
    kind: ChangeKind
    task_ids: tuple[int, ...] = ()


StoreListener = Callable[[StoreChange], None]


class TaskStore:
    """
    In-memory authoritative task collection for one session.

    Notes:
    - No business rules beyond identity uniqueness; validation lives in the controller.
    - Every mutation notifies subscribers, so presentation re-derives its column
      groupings instead of being re-rendered by hand after each call.
    - Insertion order is kept (the server's list order) and is the order within a column.
    """

    def __init__(self, tasks: Iterable[Task] = (), labels: Iterable[Label] = ()) -> None:
        self._tasks: dict[int, Task] = {}
        self._labels: dict[str, Label] = {}
        self._listeners: list[StoreListener] = []
        for task in tasks:
            self._tasks[task.id] = task
        for label in labels:
            self._labels.setdefault(label.name, label)

    # ---- change notification ----

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChangeKind, task_ids: Iterable[int] = ()) -> None:
        change = StoreChange(kind=kind, task_ids=tuple(task_ids))
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Store listener failed on %s", change.kind.value)

    # ---- tasks ----

    def list(self) -> list[Task]:
        return list(self._tasks.values())

    def get(self, task_id: int) -> Task:
        task = self._tasks.get(int(task_id))
        if task is None:
            raise NotFound(task_id)
        return task

    def find(self, task_id: int) -> Task | None:
        return self._tasks.get(int(task_id))

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def upsert(self, task: Task) -> None:
        self._tasks[task.id] = task
        logger.debug("Task upserted id=%s status=%s", task.id, task.status.value)
        self._notify(ChangeKind.UPSERT, (task.id,))

    def remove(self, task_id: int) -> bool:
        removed = self._tasks.pop(int(task_id), None) is not None
        if removed:
            logger.debug("Task removed id=%s", task_id)
            self._notify(ChangeKind.REMOVE, (int(task_id),))
        return removed

    def replace_all(self, tasks: Iterable[Task], labels: Iterable[Label] | None = None) -> None:
        """Swap in a fresh server snapshot (labels are kept when not given)."""
        self._tasks = {t.id: t for t in tasks}
        if labels is not None:
            fresh: dict[str, Label] = {}
            for label in labels:
                fresh.setdefault(label.name, label)
            self._labels = fresh
        logger.debug("Store reloaded tasks=%d labels=%d", len(self._tasks), len(self._labels))
        self._notify(ChangeKind.RELOAD, self._tasks.keys())

    # ---- label namespace ----

    def labels(self) -> list[Label]:
        return list(self._labels.values())

    def label(self, name: str) -> Label | None:
        return self._labels.get(name)

    def register_labels(self, labels: Iterable[Label]) -> list[Label]:
        """
        Add unknown names to the shared namespace.

        Returns the canonical labels in input order: a name that already exists
        keeps its registered color, like the server's get-or-add.
        """
        out: list[Label] = []
        added = False
        for label in labels:
            existing = self._labels.get(label.name)
            if existing is None:
                self._labels[label.name] = label
                existing = label
                added = True
                logger.info("Label created name=%s color=%s", label.name, label.color.value)
            out.append(existing)
        if added:
            self._notify(ChangeKind.LABELS)
        return out

    # ---- board views ----

    def columns(self, *, hide_completed: bool = False) -> dict[TaskStatus, list[Task]]:
        """
        Group tasks into kanban columns.

        Archived tasks never appear, whatever their status.
        """
        grouped: dict[TaskStatus, list[Task]] = {status: [] for status in TaskStatus}
        for task in self._tasks.values():
            if task.archived:
                continue
            if hide_completed and task.status == TaskStatus.COMPLETE:
                continue
            grouped[task.status].append(task)
        return grouped

    def archived(self) -> list[Task]:
        return [t for t in self._tasks.values() if t.archived]

    def next_action(self) -> tuple[Task, Step | None] | None:
        """
        Suggest what to work on next.

        Preference order:
        - first open task that still has an unfinished step (returns that step),
        - otherwise the first open task without steps.
        Open means not archived, not complete and not blocked.
        """
        open_tasks = [
            t
            for t in self._tasks.values()
            if not t.archived and t.status not in (TaskStatus.COMPLETE, TaskStatus.BLOCKED)
        ]
        for task in open_tasks:
            for step in task.steps:
                if not step.completed:
                    return task, step
        for task in open_tasks:
            if not task.steps:
                return task, None
        return None
