# src/flowbridge/core/session.py

from __future__ import annotations

"""
Periodic work owned by a view.

Two independent loops:
- the display tick (default 1 Hz) recomputes running timers for all displays,
- the auto-refresh poll reloads tasks from the server (disabled when interval is 0).

Both live only between BoardSession.start() and BoardSession.stop(); nothing keeps
ticking after the view that needed them is gone.
"""

import asyncio
import contextlib
import logging

from ..timers.time_reconciler import TimeReconciler, run_display_tick
from .errors import SyncFailure
from .lifecycle import LifecycleController

logger = logging.getLogger(__name__)


async def run_auto_refresh(controller: LifecycleController, *, interval_seconds: float) -> None:
    """
    Polling loop: every interval_seconds, reload the board from the server.

    A failed poll is logged and retried on the next interval; the store keeps
    its last good snapshot. To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(1.0, float(interval_seconds))
    while True:
        await asyncio.sleep(sleep_s)
        try:
            await controller.refresh()
        except SyncFailure as e:
            logger.warning("Auto-refresh failed: %s", e)
        except Exception:
            logger.exception("Auto-refresh crashed")


class BoardSession:
    def __init__(
        self,
        controller: LifecycleController,
        reconciler: TimeReconciler,
        *,
        tick_seconds: float = 1.0,
        auto_refresh_seconds: int = 0,
    ) -> None:
        self._controller = controller
        self._reconciler = reconciler
        self._tick_seconds = tick_seconds
        self._auto_refresh_seconds = max(0, int(auto_refresh_seconds))
        self._tick_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._tick_task is not None

    @property
    def auto_refresh_seconds(self) -> int:
        return self._auto_refresh_seconds

    def start(self) -> None:
        """Start the tick (and the poll, if enabled). Must be called inside a running loop."""
        if self._tick_task is None:
            self._tick_task = asyncio.create_task(
                run_display_tick(self._reconciler, interval_seconds=self._tick_seconds),
                name="flowbridge-display-tick",
            )
        self._start_refresh()
        logger.debug(
            "Board session started tick=%.2fs auto_refresh=%ss", self._tick_seconds, self._auto_refresh_seconds
        )

    def _start_refresh(self) -> None:
        if self._refresh_task is None and self._auto_refresh_seconds > 0:
            self._refresh_task = asyncio.create_task(
                run_auto_refresh(self._controller, interval_seconds=self._auto_refresh_seconds),
                name="flowbridge-auto-refresh",
            )

    async def set_auto_refresh(self, seconds: int) -> None:
        """Change the poll interval; restarts the poll if the session is running."""
        self._auto_refresh_seconds = max(0, int(seconds))
        await self._cancel_refresh()
        if self.running:
            self._start_refresh()

    async def _cancel_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        await _cancel(task)

    async def stop(self) -> None:
        tick, self._tick_task = self._tick_task, None
        await _cancel(tick)
        await self._cancel_refresh()
        logger.debug("Board session stopped")

    async def __aenter__(self) -> BoardSession:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


async def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None:
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
