# src/flowbridge/core/lifecycle.py

from __future__ import annotations

"""
Task lifecycle controller.

Every mutating operation follows the same shape:
- validate locally (ValidationError, nothing is sent),
- resolve the task (unknown id -> logged no-op, returns None),
- call the gateway and wait for it,
- only then apply the result to TaskStore.

A SyncFailure therefore always leaves TaskStore as it was.

Steps are addressed by index into the currently loaded steps list. That is only
safe with one writer per task: two views editing the same task can target the
wrong step because indices shift under them. Known limitation, kept as is.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any

from ..tasks.task_models import Label, Step, Task, TaskDraft, TaskStatus
from ..tasks.task_store import TaskStore
from ..timers.timer_registry import TimerRegistry
from .errors import InvalidArgument, NotFound, SyncFailure, ValidationError
from .ports import Clock, TaskGateway
from .selection import LabelSelection

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TransitionEvent:
    task_id: int
    old_status: TaskStatus
    new_status: TaskStatus

    @property
    def entered_complete(self) -> bool:
        """The one transition presentation celebrates. Leaving complete is not special."""
        return self.new_status == TaskStatus.COMPLETE and self.old_status != TaskStatus.COMPLETE


TransitionListener = Callable[[TransitionEvent], None]


def _require_text(value: str | None, what: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{what} must not be empty")
    return text


def _check_index(task: Task, index: int) -> int:
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(task.steps):
        raise InvalidArgument(
            f"Step index {index!r} out of range for task {task.id} ({len(task.steps)} steps)"
        )
    return index


def _unique_by_name(labels: Iterable[Label]) -> list[Label]:
    seen: set[str] = set()
    out: list[Label] = []
    for label in labels:
        name = label.name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        out.append(label if name == label.name else replace(label, name=name))
    return out


class LifecycleController:
    def __init__(
        self,
        store: TaskStore,
        gateway: TaskGateway,
        timers: TimerRegistry,
        *,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._timers = timers
        self._clock = clock
        self._listeners: list[TransitionListener] = []

    @property
    def store(self) -> TaskStore:
        return self._store

    # ---- transition events ----

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: TransitionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Transition listener failed task_id=%s", event.task_id)

    # ---- helpers ----

    def _lookup(self, task_id: int, operation: str) -> Task | None:
        try:
            return self._store.get(task_id)
        except NotFound:
            logger.info("%s ignored: task %s not found", operation, task_id)
            return None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def _push_fields(self, task: Task, fields: dict[str, Any], local: Task) -> Task:
        """Send a partial update; prefer the server's echo over our local projection."""
        echoed = await self._gateway.update(task.id, fields)
        updated = echoed if echoed is not None else local
        self._store.upsert(updated)
        return updated

    async def _push_steps(self, task: Task, steps: tuple[Step, ...]) -> Task:
        return await self._push_fields(
            task,
            {"steps": [s.to_dict() for s in steps]},
            replace(task, steps=steps),
        )

    # ---- loading ----

    async def refresh(self) -> None:
        """Replace store contents with the server's snapshot and pick up timers started elsewhere."""
        tasks = await self._gateway.fetch_all()
        labels = await self._gateway.fetch_labels()
        self._store.replace_all(tasks, labels)
        self._timers.reload()
        logger.debug("Refreshed tasks=%d labels=%d", len(tasks), len(labels))

    # ---- creation / details ----

    async def create_task(
        self,
        description: str,
        *,
        details: str | None = None,
        steps: Iterable[str] | None = None,
        due_date: date | None = None,
        labels: LabelSelection | Iterable[Label] | None = None,
    ) -> Task:
        description = _require_text(description, "Task description")
        step_texts = [s.strip() for s in steps or [] if s and s.strip()]
        resolved = self._resolve_labels(labels)

        draft = TaskDraft(
            description=description,
            details=(details or "").strip() or None,
            steps=step_texts,
            due_date=due_date,
            labels=resolved,
        )
        task = await self._gateway.create(draft)
        self._store.register_labels(task.labels or resolved)
        self._store.upsert(task)
        logger.info("Task %s created status=%s", task.id, task.status.value)
        return task

    async def update_details(
        self,
        task_id: int,
        *,
        description: str | None = None,
        details: str | None = None,
        due_date: date | None = None,
    ) -> Task | None:
        fields: dict[str, Any] = {}
        if description is not None:
            fields["description"] = _require_text(description, "Task description")
        if details is not None:
            fields["details"] = details.strip()
        if due_date is not None:
            fields["due_date"] = due_date.isoformat()

        task = self._lookup(task_id, "update_details")
        if task is None or not fields:
            return task

        local = replace(
            task,
            description=fields.get("description", task.description),
            details=(fields["details"] or None) if "details" in fields else task.details,
            due_date=due_date if due_date is not None else task.due_date,
        )
        return await self._push_fields(task, fields, local)

    # ---- status ----

    async def set_status(self, task_id: int, new_status: TaskStatus | str) -> TransitionEvent | None:
        if not isinstance(new_status, TaskStatus):
            try:
                new_status = TaskStatus.parse(new_status)
            except ValueError as e:
                raise ValidationError(f"Unknown status {new_status!r}") from e

        task = self._lookup(task_id, "set_status")
        if task is None or task.status == new_status:
            return None

        await self._gateway.update_status(task.id, new_status)
        self._store.upsert(replace(task, status=new_status))

        event = TransitionEvent(task_id=task.id, old_status=task.status, new_status=new_status)
        logger.info("Task %s %s -> %s", task.id, event.old_status.value, event.new_status.value)
        self._emit(event)
        return event

    # ---- archive / delete ----

    async def archive(self, task_id: int) -> Task | None:
        """Archive a task. A running timer keeps running; stopping it is the caller's decision."""
        task = self._lookup(task_id, "archive")
        if task is None:
            return None
        if task.archived:
            return task

        await self._gateway.update_archived(task.id, True)
        updated = replace(task, archived=True, archived_at=self._now())
        self._store.upsert(updated)
        if self._timers.is_running(task.id):
            logger.info("Task %s archived with its timer still running", task.id)
        else:
            logger.info("Task %s archived", task.id)
        return updated

    async def unarchive(self, task_id: int) -> Task | None:
        task = self._lookup(task_id, "unarchive")
        if task is None:
            return None
        if not task.archived:
            return task

        await self._gateway.update_archived(task.id, False)
        updated = replace(task, archived=False, archived_at=None)
        self._store.upsert(updated)
        logger.info("Task %s unarchived", task.id)
        return updated

    async def delete(self, task_id: int) -> bool:
        """Delete for good. A running timer is discarded, not committed."""
        task = self._lookup(task_id, "delete")
        if task is None:
            return False

        await self._gateway.delete(task.id)
        self._timers.discard(task.id)
        self._store.remove(task.id)
        logger.info("Task %s deleted", task.id)
        return True

    async def clear_completed(self) -> int:
        """Delete every complete task, one request at a time. Returns how many went."""
        completed = [t.id for t in self._store.list() if t.status == TaskStatus.COMPLETE]
        deleted = 0
        for task_id in completed:
            if await self.delete(task_id):
                deleted += 1
        logger.info("Cleared %d completed task(s)", deleted)
        return deleted

    # ---- steps ----

    async def add_step(self, task_id: int, text: str) -> Task | None:
        text = _require_text(text, "Step text")
        task = self._lookup(task_id, "add_step")
        if task is None:
            return None
        return await self._push_steps(task, (*task.steps, Step(text=text)))

    async def toggle_step(self, task_id: int, index: int) -> Task | None:
        task = self._lookup(task_id, "toggle_step")
        if task is None:
            return None
        index = _check_index(task, index)

        await self._gateway.toggle_step(task.id, index)
        steps = list(task.steps)
        steps[index] = replace(steps[index], completed=not steps[index].completed)
        updated = replace(task, steps=tuple(steps))
        self._store.upsert(updated)
        return updated

    async def update_step_text(self, task_id: int, index: int, text: str) -> Task | None:
        text = _require_text(text, "Step text")
        task = self._lookup(task_id, "update_step_text")
        if task is None:
            return None
        index = _check_index(task, index)

        steps = list(task.steps)
        steps[index] = replace(steps[index], text=text)
        return await self._push_steps(task, tuple(steps))

    async def delete_step(self, task_id: int, index: int) -> Task | None:
        task = self._lookup(task_id, "delete_step")
        if task is None:
            return None
        index = _check_index(task, index)
        steps = tuple(s for i, s in enumerate(task.steps) if i != index)
        return await self._push_steps(task, steps)

    # ---- comments ----

    async def add_comment(self, task_id: int, text: str) -> Task | None:
        """
        Append a comment. The timestamp is the server's, so the task is read back
        from the server once the comment is accepted.
        """
        text = _require_text(text, "Comment")
        task = self._lookup(task_id, "add_comment")
        if task is None:
            return None

        await self._gateway.add_comment(task.id, text)
        await self.refresh()
        return self._store.find(task.id)

    # ---- labels ----

    def _resolve_labels(self, labels: LabelSelection | Iterable[Label] | None) -> list[Label]:
        if labels is None:
            return []
        if isinstance(labels, LabelSelection):
            return _unique_by_name(labels.resolve(self._store.labels()))
        return _unique_by_name(labels)

    async def set_labels(self, task_id: int, labels: LabelSelection | Iterable[Label]) -> Task | None:
        """
        Replace the task's labels wholesale.

        Unknown names join the shared namespace before the task refers to them;
        known names keep the namespace color.
        """
        wanted = self._resolve_labels(labels)
        task = self._lookup(task_id, "set_labels")
        if task is None:
            return None

        known = {lbl.name: lbl for lbl in self._store.labels()}
        canonical = tuple(known.get(lbl.name, lbl) for lbl in wanted)

        echoed = await self._gateway.update(task.id, {"labels": [lbl.to_dict() for lbl in canonical]})
        self._store.register_labels(canonical)
        updated = echoed if echoed is not None else replace(task, labels=canonical)
        self._store.upsert(updated)
        return updated

    # ---- timers ----

    def start_timer(self, task_id: int) -> bool:
        """Start timing a loaded task. No-op (False) if unknown or already running."""
        if self._lookup(task_id, "start_timer") is None:
            return False
        return self._timers.start(task_id)

    async def stop_timer(self, task_id: int) -> int:
        """
        Stop the timer and commit its whole seconds into time_spent.

        If the commit fails the timer is re-armed with its original start, so the
        interval is not lost; the SyncFailure propagates.
        """
        task = self._lookup(task_id, "stop_timer")
        if task is None:
            # Not loaded (yet): keep the timer so a later stop can commit it.
            return 0
        self._timers.reload()
        start = self._timers.start_instant(task_id)
        if start is None:
            # Not running here, or another process already stopped and committed it.
            return 0
        delta = self._timers.stop(task_id)

        new_total = task.time_spent + delta
        try:
            await self._gateway.update_time_spent(task.id, new_total)
        except SyncFailure:
            self._timers.restore(task.id, start)
            raise

        self._store.upsert(replace(task, time_spent=new_total))
        logger.info("Task %s time committed +%ss total=%ss", task.id, delta, new_total)
        return delta

    async def toggle_timer(self, task_id: int) -> bool:
        """Start when idle, stop when running. Returns True if a timer is running afterwards."""
        if self._timers.is_running(task_id):
            await self.stop_timer(task_id)
            return False
        return self.start_timer(task_id)
