# src/flowbridge/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (HTTP gateway, JSON files, store, timers).
"""

from __future__ import annotations

import logging
import time

from ..config import get_settings
from ..core.lifecycle import LifecycleController
from ..core.ports import Clock, TaskGateway
from ..core.state import AppState
from ..preferences import PreferencesStore
from ..storage import JsonFileStorage
from ..sync.gateway import SyncGateway
from ..tasks.task_store import TaskStore
from ..timers.time_reconciler import TimeReconciler
from ..timers.timer_registry import TimerRegistry

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.timers_path.parent.mkdir(parents=True, exist_ok=True)
    settings.preferences_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    gateway: TaskGateway | None = None,
    clock: Clock = time.time,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and the gateway injectable makes the app easier to test and
    avoids hidden global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if gateway is None:
        gateway = SyncGateway(
            settings.api_base_url,
            timeout_seconds=settings.api_timeout_seconds,
            connect_timeout_seconds=settings.api_connect_timeout_seconds,
        )

    store = TaskStore()
    timers = TimerRegistry(JsonFileStorage(settings.timers_path), clock=clock)
    preferences_store = PreferencesStore(JsonFileStorage(settings.preferences_path))

    state = AppState(
        settings=settings,
        store=store,
        timers=timers,
        reconciler=TimeReconciler(store, timers),
        controller=LifecycleController(store, gateway, timers, clock=clock),
        gateway=gateway,
        preferences_store=preferences_store,
        preferences=preferences_store.load(),
    )
    if timers.running_ids():
        logger.info("Resuming %d running timer(s) from %s", len(timers.running_ids()), settings.timers_path)
    return state
