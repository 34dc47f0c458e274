# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from flowbridge.cli.bootstrap import create_initial_state
from flowbridge.core.lifecycle import LifecycleController
from flowbridge.core.state import AppState
from flowbridge.tasks.task_store import TaskStore
from flowbridge.timers.timer_registry import TimerRegistry

from .fakes import FakeClock, FakeGateway, InMemoryStorage


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="flowbridge-test",
        log_level="DEBUG",
        api_base_url="http://tasks.test",
        api_timeout_seconds=1.0,
        api_connect_timeout_seconds=1.0,
        data_dir=data_dir,
        timers_path=data_dir / "active_timers.json",
        preferences_path=data_dir / "preferences.json",
        tick_seconds=0.05,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def timer_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture()
def timers(timer_storage: InMemoryStorage, clock: FakeClock) -> TimerRegistry:
    return TimerRegistry(timer_storage, clock=clock)


@pytest.fixture()
def controller(store: TaskStore, gateway: FakeGateway, timers: TimerRegistry, clock: FakeClock) -> LifecycleController:
    return LifecycleController(store, gateway, timers, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, gateway: FakeGateway, clock: FakeClock) -> AppState:
    """
    AppState wired through the real bootstrap, with the fake server and clock.

    NOTE: timers and preferences use real JSON files under tmp_path because
    their persistence is part of what we want to test.
    """
    return create_initial_state(settings=settings, gateway=gateway, clock=clock)
