# src/flowbridge/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..preferences import Preferences, PreferencesStore
from ..tasks.task_store import TaskStore
from ..timers.time_reconciler import TimeReconciler
from ..timers.timer_registry import TimerRegistry
from .lifecycle import LifecycleController
from .ports import TaskGateway
from .session import BoardSession


@dataclass
class AppState:
    # Settings kept on the state so commands can read them without globals.
    settings: object

    store: TaskStore
    timers: TimerRegistry
    reconciler: TimeReconciler
    controller: LifecycleController
    gateway: TaskGateway

    preferences_store: PreferencesStore
    preferences: Preferences

    # Set by the view that owns the periodic loops (console), None otherwise.
    session: BoardSession | None = None

    def save_preferences(self, prefs: Preferences) -> None:
        self.preferences_store.save(prefs)
        self.preferences = prefs
