"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hearth.scheduler.engine import Scheduler
from hearth.scheduler.models import TaskRegistry
from hearth.scheduler.redundancy import RedundancyService
from hearth.scheduler.store import NodeStore
from tests.fakes import CompletionRecorder, FakeClock, ManualTimers, MemoryStore

if TYPE_CHECKING:
    from pathlib import Path

NAMESPACE = "scheduler/tasks"


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("hearth.config.settings.turso_database_url", "")


@pytest.fixture
def registry() -> TaskRegistry:
    """Strict registry that knows only the ``reminder`` and ``expire_session`` tags."""
    reg = TaskRegistry(strict=True)
    reg.register("reminder")
    reg.register("expire_session")
    return reg


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def node_store(tmp_path: Path, _no_turso: None) -> NodeStore:
    """A NodeStore backed by a temp database."""
    return NodeStore(db_path=tmp_path / "test.db")


@pytest.fixture
def redundancy(memory_store: MemoryStore, registry: TaskRegistry) -> RedundancyService:
    return RedundancyService(memory_store, registry, namespace=NAMESPACE)


@pytest.fixture
def recorder() -> CompletionRecorder:
    return CompletionRecorder()


@pytest.fixture
def scheduler(
    redundancy: RedundancyService,
    recorder: CompletionRecorder,
    timers: ManualTimers,
    clock: FakeClock,
) -> Scheduler:
    """A Scheduler on fakes; tests call ``initialize()`` themselves."""
    return Scheduler(redundancy, recorder, timers=timers, clock=clock)
