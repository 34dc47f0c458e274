# src/flowbridge/timers/time_reconciler.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..tasks.task_store import TaskStore
from .timer_registry import TimerRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TimerReading:
    task_id: int
    committed: int
    elapsed: int

    @property
    def live(self) -> int:
        return self.elapsed - self.committed


DisplayListener = Callable[[list[TimerReading]], None]


def format_duration(total_seconds: int) -> str:
    """HH:MM:SS (hours are not wrapped at 24)."""
    total_seconds = max(0, int(total_seconds))
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_total(total_seconds: int) -> str:
    total_seconds = max(0, int(total_seconds))
    return f"{total_seconds // 3600}h {(total_seconds % 3600) // 60}m"


class TimeReconciler:
    """
    Read-side join of committed time (TaskStore) and running timers (TimerRegistry).

    Owns no data. elapsed() is side-effect free and safe to call at any rate.
    """

    def __init__(self, store: TaskStore, registry: TimerRegistry) -> None:
        self._store = store
        self._registry = registry
        self._listeners: list[DisplayListener] = []

    def elapsed(self, task_id: int, committed_seconds: int) -> int:
        return int(committed_seconds) + self._registry.live_seconds(task_id)

    def elapsed_for(self, task_id: int) -> int | None:
        """Elapsed time for a task known to the store (None when it is not)."""
        task = self._store.find(task_id)
        if task is None:
            return None
        return self.elapsed(task.id, task.time_spent)

    def readings(self) -> list[TimerReading]:
        """
        One reading per running timer whose task is loaded.

        Work is proportional to the number of running timers, not the number of tasks.
        Timers for tasks that are not (yet) in the store are skipped, not dropped.
        """
        out: list[TimerReading] = []
        for task_id in self._registry.running_ids():
            task = self._store.find(task_id)
            if task is None:
                continue
            out.append(
                TimerReading(
                    task_id=task_id,
                    committed=task.time_spent,
                    elapsed=self.elapsed(task_id, task.time_spent),
                )
            )
        return out

    # ---- display broadcast ----

    def subscribe(self, listener: DisplayListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def tick(self) -> list[TimerReading]:
        """
        Recompute every running timer once and push the readings to all displays.

        An empty list is pushed too, so displays drop timers that have stopped.
        """
        readings = self.readings()
        for listener in list(self._listeners):
            try:
                listener(readings)
            except Exception:
                logger.exception("Timer display listener failed")
        return readings


async def run_display_tick(reconciler: TimeReconciler, *, interval_seconds: float = 1.0) -> None:
    """
    Broadcast recompute loop: one tick per interval for all running timers.

    To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(0.05, float(interval_seconds))
    while True:
        try:
            reconciler.tick()
        except Exception:
            logger.exception("Display tick failed")
        await asyncio.sleep(sleep_s)
