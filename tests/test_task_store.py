# tests/test_task_store.py

from __future__ import annotations

import pytest

from flowbridge.core.errors import NotFound
from flowbridge.tasks.task_models import Label, LabelColor, Step, Task, TaskStatus
from flowbridge.tasks.task_store import ChangeKind, StoreChange, TaskStore


def _task(task_id: int, status: TaskStatus = TaskStatus.NOT_STARTED, **kw) -> Task:
    return Task(id=task_id, description=f"task {task_id}", status=status, **kw)


def test_columns_group_by_status_and_skip_archived() -> None:
    store = TaskStore(
        [
            _task(1),
            _task(2, TaskStatus.IN_PROGRESS),
            _task(3, TaskStatus.IN_PROGRESS, archived=True),
            _task(4, TaskStatus.COMPLETE),
        ]
    )

    cols = store.columns()
    assert list(cols) == list(TaskStatus)
    assert [t.id for t in cols[TaskStatus.NOT_STARTED]] == [1]
    assert [t.id for t in cols[TaskStatus.IN_PROGRESS]] == [2]
    assert [t.id for t in cols[TaskStatus.COMPLETE]] == [4]
    assert [t.id for t in store.archived()] == [3]

    hidden = store.columns(hide_completed=True)
    assert hidden[TaskStatus.COMPLETE] == []


def test_get_unknown_raises_not_found() -> None:
    store = TaskStore()
    with pytest.raises(NotFound) as exc:
        store.get(99)
    assert exc.value.task_id == 99
    assert store.find(99) is None


def test_mutations_notify_subscribers_until_unsubscribed() -> None:
    store = TaskStore()
    seen: list[StoreChange] = []
    unsubscribe = store.subscribe(seen.append)

    store.upsert(_task(1))
    store.remove(1)
    store.remove(1)  # already gone: no notification
    store.replace_all([_task(2), _task(3)])

    assert [c.kind for c in seen] == [ChangeKind.UPSERT, ChangeKind.REMOVE, ChangeKind.RELOAD]
    assert seen[-1].task_ids == (2, 3)

    unsubscribe()
    store.upsert(_task(4))
    assert len(seen) == 3


def test_failing_listener_does_not_block_others() -> None:
    store = TaskStore()
    seen: list[StoreChange] = []

    def broken(change: StoreChange) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.upsert(_task(1))

    assert len(seen) == 1
    assert 1 in store


def test_register_labels_keeps_existing_color() -> None:
    store = TaskStore(labels=[Label("work", LabelColor.BLUE)])
    seen: list[StoreChange] = []
    store.subscribe(seen.append)

    canonical = store.register_labels([Label("work", LabelColor.RED), Label("home", LabelColor.GREEN)])

    assert canonical == [Label("work", LabelColor.BLUE), Label("home", LabelColor.GREEN)]
    assert [lbl.name for lbl in store.labels()] == ["work", "home"]
    assert [c.kind for c in seen] == [ChangeKind.LABELS]

    store.register_labels([Label("work")])
    assert len(seen) == 1


def test_replace_all_keeps_labels_when_not_given() -> None:
    store = TaskStore(labels=[Label("work")])
    store.replace_all([_task(1)])
    assert store.label("work") == Label("work")

    store.replace_all([_task(1)], labels=[])
    assert store.labels() == []


def test_next_action_prefers_first_unfinished_step() -> None:
    store = TaskStore(
        [
            _task(1, TaskStatus.BLOCKED, steps=(Step("blocked step"),)),
            _task(2),
            _task(3, TaskStatus.IN_PROGRESS, steps=(Step("Outline", True), Step("Draft"))),
            _task(4, TaskStatus.COMPLETE, steps=(Step("never"),)),
        ]
    )

    task, step = store.next_action()
    assert task.id == 3
    assert step == Step("Draft")


def test_next_action_falls_back_to_task_without_steps() -> None:
    store = TaskStore([_task(1, steps=(Step("done", True),)), _task(2)])
    assert store.next_action() == (store.get(2), None)

    assert TaskStore([_task(5, TaskStatus.COMPLETE)]).next_action() is None
