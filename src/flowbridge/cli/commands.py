# src/flowbridge/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..core.errors import SyncFailure, ValidationError
from ..core.selection import LabelSelection
from ..core.state import AppState
from ..tasks.task_models import Label, Task, TaskStatus
from ..timers.time_reconciler import format_duration, format_total

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

COLUMN_TITLES = {
    TaskStatus.NOT_STARTED: "Not started",
    TaskStatus.IN_PROGRESS: "In progress",
    TaskStatus.IN_REVIEW: "In review",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.COMPLETE: "Complete",
}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Validation and server errors become replies; the user can simply retry.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except ValidationError as e:
            return f"Error: {e}"
        except SyncFailure as e:
            logger.info("Command /%s failed: %s", name, e)
            return f"Server error: {e}. Nothing was changed; try again."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting ----


def _parse_id(raw: str) -> int | None:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        return None


def _card_line(state: AppState, task: Task) -> str:
    done, total = task.progress
    parts = [f"#{task.id} {task.description}"]
    if total:
        parts.append(f"[{done}/{total}]")
    if task.labels:
        parts.append(" ".join(f"<{lbl.name}>" for lbl in task.labels))
    if task.due_date:
        parts.append(f"due {task.due_date.isoformat()}")
    elapsed = state.reconciler.elapsed(task.id, task.time_spent)
    if elapsed or state.timers.is_running(task.id):
        marker = " *" if state.timers.is_running(task.id) else ""
        parts.append(f"{format_duration(elapsed)}{marker}")
    return " ".join(parts)


def _details(state: AppState, task: Task) -> str:
    lines = [_card_line(state, task), f"  Status: {COLUMN_TITLES[task.status]}"]
    if task.archived:
        stamp = task.archived_at.isoformat() if task.archived_at else "unknown"
        lines.append(f"  Archived: {stamp}")
    if task.details:
        lines.append(f"  Details: {task.details}")
    lines.append(f"  Time: {format_total(task.time_spent)} committed")
    if task.steps:
        lines.append("  Steps:")
        for i, step in enumerate(task.steps, start=1):
            lines.append(f"    {i}. [{'x' if step.completed else ' '}] {step.text}")
    if task.comments:
        lines.append(f"  Comments ({len(task.comments)}):")
        for c in task.comments:
            stamp = c.created_at.astimezone().strftime("%Y-%m-%d %H:%M") if c.created_at else "?"
            lines.append(f"    [{stamp}] {c.text}")
    return "\n".join(lines)


# ---- handlers ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(state: AppState, args: list[str]) -> str:
    columns = state.store.columns(hide_completed=state.preferences.hide_completed)
    lines: list[str] = []
    for status, tasks in columns.items():
        if state.preferences.hide_completed and status == TaskStatus.COMPLETE:
            continue
        lines.append(f"{COLUMN_TITLES[status]} ({len(tasks)})")
        lines.extend(f"  {_card_line(state, t)}" for t in tasks)
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add Write report
    /add Write report | Outline; Draft; Edit
    """
    text = " ".join(args)
    description, _, steps_raw = text.partition("|")
    steps = steps_raw.split(";") if steps_raw else []
    task = await state.controller.create_task(description, steps=steps)
    return f"Created #{task.id}: {task.description}"


async def cmd_show(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /show <id>"
    task = state.store.find(task_id)
    if task is None:
        return f"No task #{task_id}."
    return _details(state, task)


async def cmd_move(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None or len(args) < 2:
        return "Usage: /move <id> <notstarted|inprogress|inreview|blocked|complete>"
    event = await state.controller.set_status(task_id, "".join(args[1:]))
    if event is None:
        return f"#{task_id} unchanged."
    return f"#{task_id}: {COLUMN_TITLES[event.old_status]} -> {COLUMN_TITLES[event.new_status]}"


async def cmd_step(state: AppState, args: list[str]) -> str:
    """
    /step add <id> <text>
    /step toggle <id> <n>
    /step edit <id> <n> <text>
    /step rm <id> <n>
    Step numbers are 1-based here.
    """
    usage = "Usage: /step add <id> <text> | toggle <id> <n> | edit <id> <n> <text> | rm <id> <n>"
    if len(args) < 3:
        return usage
    sub, task_id = args[0].lower(), _parse_id(args[1])
    if task_id is None:
        return usage

    ctl = state.controller
    if sub == "add":
        task = await ctl.add_step(task_id, " ".join(args[2:]))
    else:
        number = _parse_id(args[2])
        if number is None:
            return usage
        index = number - 1
        if sub == "toggle":
            task = await ctl.toggle_step(task_id, index)
        elif sub == "edit":
            task = await ctl.update_step_text(task_id, index, " ".join(args[3:]))
        elif sub in ("rm", "del", "delete"):
            task = await ctl.delete_step(task_id, index)
        else:
            return usage

    if task is None:
        return f"No task #{task_id}."
    done, total = task.progress
    return f"#{task.id} steps: {done}/{total} done"


async def cmd_comment(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /comment <id> <text>"
    task = await state.controller.add_comment(task_id, " ".join(args[1:]))
    if task is None:
        return f"No task #{task_id}."
    return f"#{task.id}: {len(task.comments)} comment(s)"


async def cmd_labels(state: AppState, args: list[str]) -> str:
    """/labels <id> name[:color] ...   (no names clears the labels)"""
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        known = ", ".join(f"{lbl.name}:{lbl.color.value}" for lbl in state.store.labels())
        return f"Usage: /labels <id> name[:color] ...\nKnown labels: {known or '(none)'}"

    # Colors apply to new names only; resolve per name so each keeps its own color.
    task = await state.controller.set_labels(task_id, _labels_from_args(state, args[1:]))
    if task is None:
        return f"No task #{task_id}."
    return f"#{task.id} labels: {', '.join(task.label_names) or '(none)'}"


def _labels_from_args(state: AppState, raw_args: list[str]) -> list[Label]:
    labels: list[Label] = []
    for raw in raw_args:
        name, _, color = raw.partition(":")
        selection = LabelSelection().toggled(name)
        if color:
            selection = selection.with_color(color)
        labels.extend(selection.resolve(state.store.labels()))
    return labels


async def cmd_archive(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /archive <id>"
    task = await state.controller.archive(task_id)
    if task is None:
        return f"No task #{task_id}."
    note = " (its timer is still running)" if state.timers.is_running(task.id) else ""
    return f"#{task.id} archived{note}."


async def cmd_unarchive(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /unarchive <id>"
    task = await state.controller.unarchive(task_id)
    if task is None:
        return f"No task #{task_id}."
    return f"#{task.id} is back in {COLUMN_TITLES[task.status]}."


async def cmd_archived(state: AppState, args: list[str]) -> str:
    tasks = state.store.archived()
    if not tasks:
        return "No archived tasks."
    lines = ["Archived:"]
    for t in tasks:
        stamp = t.archived_at.astimezone().strftime("%Y-%m-%d %H:%M") if t.archived_at else "unknown"
        lines.append(f"  #{t.id} {t.description} (archived {stamp})")
    return "\n".join(lines)


async def cmd_delete(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /delete <id> [yes]"
    if state.preferences.confirm_delete and (len(args) < 2 or args[1].lower() != "yes"):
        return f"This cannot be undone. Confirm with: /delete {task_id} yes"
    if not await state.controller.delete(task_id):
        return f"No task #{task_id}."
    return f"#{task_id} deleted."


async def cmd_clear(state: AppState, args: list[str]) -> str:
    count = sum(1 for t in state.store.list() if t.status == TaskStatus.COMPLETE)
    if not count:
        return "No completed tasks to clear."
    if not args or args[0].lower() != "yes":
        return f"Delete all {count} completed task(s)? Confirm with: /clear yes"
    deleted = await state.controller.clear_completed()
    return f"Cleared {deleted} completed task(s)."


async def cmd_timer(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args[0]) if args else None
    if task_id is None:
        return "Usage: /timer <id>   (starts or stops)"
    if state.store.find(task_id) is None:
        return f"No task #{task_id}."
    if state.timers.is_running(task_id):
        delta = await state.controller.stop_timer(task_id)
        task = state.store.get(task_id)
        return f"#{task_id} timer stopped: +{format_duration(delta)} (total {format_duration(task.time_spent)})"
    if not state.controller.start_timer(task_id):
        # Another process already runs it; the registry adopted its start instant.
        running = format_duration(state.timers.live_seconds(task_id))
        return f"#{task_id} timer was already running elsewhere ({running}); showing it here."
    return f"#{task_id} timer started."


async def cmd_timers(state: AppState, args: list[str]) -> str:
    readings = state.reconciler.readings()
    if not readings:
        return "No timers running."
    lines = ["Running timers:"]
    for r in readings:
        task = state.store.get(r.task_id)
        lines.append(f"  #{r.task_id} {task.description}: {format_duration(r.elapsed)}")
    return "\n".join(lines)


async def cmd_next(state: AppState, args: list[str]) -> str:
    suggestion = state.store.next_action()
    if suggestion is None:
        return "Nothing to do. Add a task with /add."
    task, step = suggestion
    if step is None:
        return f"Next: #{task.id} {task.description}"
    return f"Next: #{task.id} {task.description} -> {step.text}"


async def cmd_refresh(state: AppState, args: list[str]) -> str:
    await state.controller.refresh()
    return f"Loaded {len(state.store)} task(s)."


async def cmd_prefs(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /prefs              -> show preferences
    /prefs <key> <val>  -> change one
    """
    prefs = state.preferences
    if len(args) < 2:
        return "Preferences:\n" + "\n".join(f"  {k} = {v}" for k, v in prefs.to_dict().items())

    key, raw = args[0].lower(), args[1]
    try:
        updated = prefs.updated(key, raw)
    except KeyError:
        return f"Unknown preference: {key}"
    except ValueError as e:
        return f"Error: {e}"

    state.save_preferences(updated)
    if key == "auto_refresh_seconds" and state.session is not None:
        await state.session.set_auto_refresh(updated.auto_refresh_seconds)
        if emit is not None:
            seconds = updated.auto_refresh_seconds
            emit(f"[PREFS] auto-refresh {'off' if not seconds else f'every {seconds}s'}")
    return f"{key} = {getattr(updated, key)}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show the board by column.", aliases=["ls", "board"])
registry.register("add", cmd_add, help_text="Create a task: /add <description> [| step; step].")
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("move", cmd_move, help_text="Change status: /move <id> <status>.", aliases=["mv"])
registry.register("step", cmd_step, help_text="Edit steps: /step add|toggle|edit|rm ...")
registry.register("comment", cmd_comment, help_text="Add a comment: /comment <id> <text>.")
registry.register("labels", cmd_labels, help_text="Replace labels: /labels <id> name[:color] ...")
registry.register("archive", cmd_archive, help_text="Archive a task: /archive <id>.")
registry.register("unarchive", cmd_unarchive, help_text="Restore an archived task: /unarchive <id>.")
registry.register("archived", cmd_archived, help_text="List archived tasks.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id> [yes].", aliases=["rm"])
registry.register("clear", cmd_clear, help_text="Delete all completed tasks: /clear yes.")
registry.register("timer", cmd_timer, help_text="Start/stop the timer: /timer <id>.")
registry.register("timers", cmd_timers, help_text="Show running timers.")
registry.register("next", cmd_next, help_text="Suggest the next small action.")
registry.register("refresh", cmd_refresh, help_text="Reload tasks from the server.")
registry.register("prefs", cmd_prefs, help_text="Show/change preferences: /prefs <key> <value>.")
