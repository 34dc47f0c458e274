# src/flowbridge/timers/timer_registry.py

from __future__ import annotations

import logging
import math
import time

from ..core.ports import Clock, DocumentStorage

logger = logging.getLogger(__name__)


def whole_seconds(start_instant: float, now: float) -> int:
    """Elapsed whole seconds, truncated and never negative (clock steps backwards clamp to 0)."""
    return max(0, math.floor(now - start_instant))


class TimerRegistry:
    """
    Running timers: task id -> wall-clock start instant.

    The snapshot is written to durable storage on every mutation, so a restarted
    process resumes the same timers with the same start instants and the
    displayed time continues instead of resetting.

    Several processes may share the same storage. Each mutation re-reads the
    stored snapshot first and decides against it (a compare-and-swap keyed on
    task id):
    - start() refuses if another process already recorded a start for the task,
      and adopts that start instant;
    - stop() returns 0 if another process already stopped it, so one interval is
      never committed twice.
    The gap between the re-read and the write is still a race (last write wins);
    there is no cross-process lock.

    This class never touches Task state. Committing a delta is the caller's job.
    """

    def __init__(self, storage: DocumentStorage, *, clock: Clock = time.time) -> None:
        self._storage = storage
        self._clock = clock
        self._timers: dict[int, float] = {}
        self.reload()

    # ---- persistence ----

    @staticmethod
    def _decode(raw: dict) -> dict[int, float]:
        out: dict[int, float] = {}
        for key, value in raw.items():
            try:
                out[int(key)] = float(value)
            except (TypeError, ValueError):
                logger.warning("Dropping malformed timer entry %r=%r", key, value)
        return out

    def reload(self) -> dict[int, float]:
        """Replace the in-memory view with what storage holds now."""
        self._timers = self._decode(self._storage.load())
        return dict(self._timers)

    def _persist(self) -> None:
        self._storage.save({str(k): v for k, v in sorted(self._timers.items())})

    # ---- queries ----

    def is_running(self, task_id: int) -> bool:
        return int(task_id) in self._timers

    def start_instant(self, task_id: int) -> float | None:
        return self._timers.get(int(task_id))

    def running_ids(self) -> list[int]:
        return list(self._timers)

    def live_seconds(self, task_id: int) -> int:
        """Whole seconds on the running timer for task_id (0 when not running)."""
        start = self._timers.get(int(task_id))
        if start is None:
            return 0
        return whole_seconds(start, self._clock())

    # ---- mutations ----

    def start(self, task_id: int) -> bool:
        task_id = int(task_id)
        self.reload()
        if task_id in self._timers:
            logger.debug("Timer already running task_id=%s start=%s", task_id, self._timers[task_id])
            return False

        self._timers[task_id] = self._clock()
        self._persist()
        logger.info("Timer started task_id=%s", task_id)
        return True

    def stop(self, task_id: int) -> int:
        """Remove the timer and return its whole elapsed seconds (0 if none was running)."""
        task_id = int(task_id)
        self.reload()
        start = self._timers.pop(task_id, None)
        if start is None:
            logger.debug("Timer stop ignored, not running task_id=%s", task_id)
            return 0

        delta = whole_seconds(start, self._clock())
        self._persist()
        logger.info("Timer stopped task_id=%s delta=%ss", task_id, delta)
        return delta

    def discard(self, task_id: int) -> bool:
        """Drop a timer without measuring it (used when its task is deleted)."""
        task_id = int(task_id)
        self.reload()
        if self._timers.pop(task_id, None) is None:
            return False
        self._persist()
        logger.info("Timer discarded task_id=%s", task_id)
        return True

    def restore(self, task_id: int, start_instant: float) -> None:
        """Re-arm a timer with a known start instant (after a failed commit)."""
        task_id = int(task_id)
        self.reload()
        self._timers[task_id] = float(start_instant)
        self._persist()
        logger.info("Timer restored task_id=%s start=%s", task_id, start_instant)
