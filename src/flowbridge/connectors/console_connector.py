# src/flowbridge/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.errors import SyncFailure
from ..core.lifecycle import TransitionEvent
from ..core.session import BoardSession
from ..core.state import AppState
from ..timers.time_reconciler import TimerReading, format_duration

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleView:
    """
    Console-side presentation: reacts to core notifications.

    - celebrates a task entering "complete" (bell if sounds are enabled),
    - keeps the latest timer readings so the prompt can show them without
      recomputing anything.
    """

    def __init__(self, state: AppState) -> None:
        self._state = state
        self.last_readings: dict[int, int] = {}

    def on_transition(self, event: TransitionEvent) -> None:
        if not event.entered_complete:
            return
        task = self._state.store.find(event.task_id)
        name = task.description if task else f"#{event.task_id}"
        bell = "\a" if self._state.preferences.sound_enabled else ""
        _print_ts(f"{bell}*** Done: {name} ***")

    def on_timers(self, readings: list[TimerReading]) -> None:
        self.last_readings = {r.task_id: r.elapsed for r in readings}

    def prompt(self) -> str:
        if not self.last_readings:
            return ">>> "
        shown = " ".join(f"#{tid} {format_duration(sec)}" for tid, sec in sorted(self.last_readings.items()))
        return f"[{shown}] >>> "


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (server=%s).", getattr(state.settings, "api_base_url", "?"))
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.")

    view = ConsoleView(state)
    unsubscribe_transitions = state.controller.subscribe(view.on_transition)
    unsubscribe_timers = state.reconciler.subscribe(view.on_timers)

    try:
        await state.controller.refresh()
        _print_ts(f"Loaded {len(state.store)} task(s).")
    except SyncFailure as e:
        _print_ts(f"[SYNC] Could not load tasks: {e}. Use /refresh to retry.")

    session = BoardSession(
        state.controller,
        state.reconciler,
        tick_seconds=float(getattr(state.settings, "tick_seconds", 1.0)),
        auto_refresh_seconds=state.preferences.auto_refresh_seconds,
    )
    state.session = session

    try:
        async with session:
            while True:
                try:
                    user_input = (await asyncio.to_thread(input, view.prompt())).strip()
                except EOFError:
                    logger.info("Console EOF received, exiting.")
                    break
                except KeyboardInterrupt:
                    logger.info("Console KeyboardInterrupt, exiting.")
                    print()
                    break

                if not user_input:
                    continue

                if user_input.lower() in ("/exit", "/quit"):
                    logger.info("Console exit command received.")
                    break

                try:
                    reply = await command_registry.handle(state, user_input, emit=_print_ts)
                except Exception:
                    logger.exception("Command handler crashed.")
                    reply = "Internal error while handling a command."

                if reply is None:
                    reply = "Commands start with '/'. Use /help to list them."
                print(reply, file=sys.stdout, flush=True)
    finally:
        state.session = None
        unsubscribe_timers()
        unsubscribe_transitions()

    logger.info("Console connector finished.")
