# tests/test_lifecycle.py

from __future__ import annotations

from datetime import date

import pytest

from flowbridge.core.errors import InvalidArgument, SyncFailure, ValidationError
from flowbridge.core.lifecycle import LifecycleController, TransitionEvent
from flowbridge.core.selection import LabelSelection
from flowbridge.tasks.task_models import Label, LabelColor, TaskStatus
from flowbridge.tasks.task_store import TaskStore
from flowbridge.timers.timer_registry import TimerRegistry

from .fakes import FakeClock, FakeGateway


@pytest.mark.asyncio
async def test_write_report_flow(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway, clock: FakeClock
) -> None:
    task = await controller.create_task("Write report", steps=["Outline", "Draft", "Edit"])
    assert task.status is TaskStatus.NOT_STARTED
    assert task.progress == (0, 3)

    events: list[TransitionEvent] = []
    controller.subscribe(events.append)

    await controller.set_status(task.id, TaskStatus.IN_PROGRESS)
    assert controller.start_timer(task.id) is True
    clock.advance(25 * 60)

    await controller.toggle_step(task.id, 0)
    delta = await controller.stop_timer(task.id)
    await controller.set_status(task.id, "complete")

    current = store.get(task.id)
    assert delta == 1500
    assert current.time_spent == 1500
    assert current.progress == (1, 3)
    assert current.status is TaskStatus.COMPLETE
    assert [e.entered_complete for e in events] == [False, True]

    # The server agrees with the store.
    await controller.refresh()
    assert store.get(task.id) == current


@pytest.mark.asyncio
async def test_create_rejects_empty_description(controller: LifecycleController, gateway: FakeGateway) -> None:
    with pytest.raises(ValidationError):
        await controller.create_task("   ")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_create_drops_blank_steps_and_registers_labels(
    controller: LifecycleController, store: TaskStore
) -> None:
    selection = LabelSelection().toggled("work").with_color("blue")
    task = await controller.create_task(
        "Plan sprint",
        details="  ",
        steps=["One", " ", ""],
        due_date=date(2024, 9, 1),
        labels=selection,
    )

    assert [s.text for s in task.steps] == ["One"]
    assert task.details is None
    assert task.due_date == date(2024, 9, 1)
    assert store.label("work") == Label("work", LabelColor.BLUE)


@pytest.mark.asyncio
async def test_set_status_same_value_is_noop(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a", status="inprogress")
    await controller.refresh()
    events: list[TransitionEvent] = []
    controller.subscribe(events.append)
    changes: list = []
    store.subscribe(changes.append)

    assert await controller.set_status(task_id, "in_progress") is None
    assert events == []
    assert changes == []
    assert "update_status" not in gateway.operations()


@pytest.mark.asyncio
async def test_set_status_unknown_value_is_validation_error(controller: LifecycleController, gateway: FakeGateway) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()
    with pytest.raises(ValidationError):
        await controller.set_status(task_id, "finished")


@pytest.mark.asyncio
async def test_leaving_complete_is_not_a_celebration(controller: LifecycleController, gateway: FakeGateway) -> None:
    task_id = gateway.seed("a", status="complete")
    await controller.refresh()
    event = await controller.set_status(task_id, TaskStatus.BLOCKED)
    assert event is not None
    assert event.entered_complete is False


@pytest.mark.asyncio
async def test_unknown_task_is_a_noop(controller: LifecycleController, gateway: FakeGateway) -> None:
    assert await controller.set_status(99, TaskStatus.COMPLETE) is None
    assert await controller.archive(99) is None
    assert await controller.delete(99) is False
    assert controller.start_timer(99) is False
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_toggle_step_flips_only_that_step(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway
) -> None:
    task_id = gateway.seed(
        "steps",
        steps=[{"text": "a", "completed": False}, {"text": "b", "completed": True}, {"text": "c", "completed": False}],
    )
    await controller.refresh()

    task = await controller.toggle_step(task_id, 1)
    assert [s.completed for s in task.steps] == [False, False, False]
    assert [s.text for s in task.steps] == ["a", "b", "c"]
    assert ("toggle_step", (task_id, 1)) in gateway.calls


@pytest.mark.asyncio
@pytest.mark.parametrize("index", [-1, 3, 10])
async def test_out_of_range_step_index_is_rejected(
    controller: LifecycleController, gateway: FakeGateway, index: int
) -> None:
    task_id = gateway.seed("steps", steps=[{"text": "a", "completed": False}] * 3)
    await controller.refresh()
    before = len(gateway.calls)

    with pytest.raises(InvalidArgument):
        await controller.toggle_step(task_id, index)
    with pytest.raises(InvalidArgument):
        await controller.delete_step(task_id, index)
    assert len(gateway.calls) == before


@pytest.mark.asyncio
async def test_step_edits_go_through_update(controller: LifecycleController, gateway: FakeGateway) -> None:
    task_id = gateway.seed("steps", steps=[{"text": "a", "completed": True}])
    await controller.refresh()

    await controller.add_step(task_id, "b")
    await controller.update_step_text(task_id, 0, "A")
    task = await controller.delete_step(task_id, 1)

    assert [(s.text, s.completed) for s in task.steps] == [("A", True)]
    assert gateway.tasks[task_id]["steps"] == [{"text": "A", "completed": True}]


@pytest.mark.asyncio
async def test_update_without_echo_uses_local_projection(store: TaskStore, timers: TimerRegistry) -> None:
    gateway = FakeGateway(echo_updates=False)
    controller = LifecycleController(store, gateway, timers)
    task_id = gateway.seed("old")
    await controller.refresh()

    task = await controller.update_details(task_id, description="new", details="more", due_date=date(2024, 1, 5))
    assert (task.description, task.details, task.due_date) == ("new", "more", date(2024, 1, 5))
    assert store.get(task_id) == task


@pytest.mark.asyncio
async def test_archive_and_unarchive_move_between_board_and_archive(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a", status="inreview")
    await controller.refresh()

    archived = await controller.archive(task_id)
    assert archived.archived is True
    assert archived.archived_at is not None
    assert store.columns()[TaskStatus.IN_REVIEW] == []
    assert [t.id for t in store.archived()] == [task_id]

    restored = await controller.unarchive(task_id)
    assert restored.archived_at is None
    assert [t.id for t in store.columns()[TaskStatus.IN_REVIEW]] == [task_id]
    assert store.archived() == []


@pytest.mark.asyncio
async def test_archive_keeps_timer_running(
    controller: LifecycleController, timers: TimerRegistry, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()
    controller.start_timer(task_id)

    await controller.archive(task_id)
    assert timers.is_running(task_id)


@pytest.mark.asyncio
async def test_delete_discards_running_timer(
    controller: LifecycleController, store: TaskStore, timers: TimerRegistry, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()
    controller.start_timer(task_id)

    assert await controller.delete(task_id) is True
    assert task_id not in store
    assert not timers.is_running(task_id)
    assert "update_time_spent" not in gateway.operations()


@pytest.mark.asyncio
async def test_clear_completed(controller: LifecycleController, store: TaskStore, gateway: FakeGateway) -> None:
    gateway.seed("a", status="complete")
    keep = gateway.seed("b", status="blocked")
    gateway.seed("c", status="complete")
    await controller.refresh()

    assert await controller.clear_completed() == 2
    assert [t.id for t in store.list()] == [keep]


@pytest.mark.asyncio
async def test_sync_failure_leaves_store_unchanged(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()
    before = store.get(task_id)
    gateway.fail_on = {"update_status", "update_archived", "delete", "update"}

    with pytest.raises(SyncFailure):
        await controller.set_status(task_id, TaskStatus.COMPLETE)
    with pytest.raises(SyncFailure):
        await controller.archive(task_id)
    with pytest.raises(SyncFailure):
        await controller.delete(task_id)
    with pytest.raises(SyncFailure):
        await controller.add_step(task_id, "x")

    assert store.get(task_id) == before


@pytest.mark.asyncio
async def test_failed_time_commit_keeps_timer_running(
    controller: LifecycleController, store: TaskStore, timers: TimerRegistry, gateway: FakeGateway, clock: FakeClock
) -> None:
    task_id = gateway.seed("a", time_spent=100)
    await controller.refresh()
    controller.start_timer(task_id)
    started_at = timers.start_instant(task_id)
    clock.advance(40)
    gateway.fail_on = {"update_time_spent"}

    with pytest.raises(SyncFailure):
        await controller.stop_timer(task_id)

    assert timers.start_instant(task_id) == started_at
    assert store.get(task_id).time_spent == 100

    gateway.fail_on = set()
    clock.advance(20)
    assert await controller.stop_timer(task_id) == 60
    assert store.get(task_id).time_spent == 160


@pytest.mark.asyncio
async def test_stop_after_other_process_stopped_commits_nothing(
    controller: LifecycleController, timers: TimerRegistry, gateway: FakeGateway, timer_storage, clock: FakeClock
) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()
    controller.start_timer(task_id)
    clock.advance(10)

    # Another process stops the same timer first.
    TimerRegistry(timer_storage, clock=clock).stop(task_id)

    assert await controller.stop_timer(task_id) == 0
    assert "update_time_spent" not in gateway.operations()


@pytest.mark.asyncio
async def test_stop_timer_for_unloaded_task_keeps_the_timer(
    controller: LifecycleController, timers: TimerRegistry, timer_storage, clock: FakeClock, gateway: FakeGateway
) -> None:
    # Resumed from disk, but the first refresh has not loaded the task yet.
    timer_storage.data = {"7": clock.now - 3600}
    timers.reload()

    assert await controller.stop_timer(7) == 0
    assert await controller.toggle_timer(7) is False
    assert timers.live_seconds(7) == 3600
    assert timer_storage.data == {"7": clock.now - 3600}
    assert gateway.calls == []

    task_ids = [gateway.seed(name) for name in "abcdefg"]
    assert task_ids[-1] == 7
    await controller.refresh()
    assert await controller.stop_timer(7) == 3600
    assert gateway.tasks[7]["time_spent"] == 3600


@pytest.mark.asyncio
async def test_toggle_timer(controller: LifecycleController, timers: TimerRegistry, gateway: FakeGateway, clock: FakeClock) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()

    assert await controller.toggle_timer(task_id) is True
    clock.advance(3)
    assert await controller.toggle_timer(task_id) is False
    assert gateway.tasks[task_id]["time_spent"] == 3


@pytest.mark.asyncio
async def test_set_labels_uses_namespace_colors(
    controller: LifecycleController, store: TaskStore, gateway: FakeGateway
) -> None:
    gateway.labels["work"] = "blue"
    task_id = gateway.seed("a")
    await controller.refresh()

    task = await controller.set_labels(task_id, [Label("work", LabelColor.RED), Label("urgent", LabelColor.RED)])

    assert task.labels == (Label("work", LabelColor.BLUE), Label("urgent", LabelColor.RED))
    assert store.label("urgent") == Label("urgent", LabelColor.RED)

    cleared = await controller.set_labels(task_id, LabelSelection())
    assert cleared.labels == ()
    # Removing a label from a task keeps it in the namespace.
    assert store.label("urgent") is not None


@pytest.mark.asyncio
async def test_add_comment_reads_back_server_timestamp(
    controller: LifecycleController, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a")
    await controller.refresh()

    with pytest.raises(ValidationError):
        await controller.add_comment(task_id, "  ")

    task = await controller.add_comment(task_id, "Looks good")
    assert [c.text for c in task.comments] == ["Looks good"]
    assert task.comments[0].created_at is not None
    assert gateway.operations()[-3:] == ["add_comment", "fetch_all", "fetch_labels"]


@pytest.mark.asyncio
async def test_refresh_picks_up_timers_started_elsewhere(
    controller: LifecycleController, timers: TimerRegistry, timer_storage, clock: FakeClock, gateway: FakeGateway
) -> None:
    task_id = gateway.seed("a")
    TimerRegistry(timer_storage, clock=clock).start(task_id)
    assert not timers.is_running(task_id)

    await controller.refresh()
    assert timers.is_running(task_id)
