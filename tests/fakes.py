# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any


class FakeClock:
    """Deterministic clock; call it to read the time, ``advance`` to move it."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 6, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass(eq=False)
class ManualTimer:
    key: str
    run_at: datetime
    callback: Callable[[str], Awaitable[None]]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def armed(self) -> bool:
        return not (self.cancelled or self.fired)


@dataclass
class ManualTimers:
    """TimerService that only fires when a test says so."""

    registered: list[ManualTimer] = field(default_factory=list)
    started: bool = False
    stopped: bool = False

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.stopped = True

    def register(
        self,
        key: str,
        run_at: datetime,
        callback: Callable[[str], Awaitable[None]],
    ) -> ManualTimer:
        timer = ManualTimer(key=key, run_at=run_at, callback=callback)
        self.registered.append(timer)
        return timer

    def armed(self, key: str | None = None) -> list[ManualTimer]:
        return [t for t in self.registered if t.armed and (key is None or t.key == key)]

    async def fire(self, key: str) -> int:
        """Fire every armed timer for *key*. Returns how many fired."""
        due = self.armed(key)
        for timer in due:
            timer.fired = True
            await timer.callback(timer.key)
        return len(due)

    async def run_until(self, now: datetime) -> int:
        """Fire every armed timer due at or before *now*."""
        due = [t for t in self.armed() if t.run_at <= now]
        for timer in due:
            timer.fired = True
            await timer.callback(timer.key)
        return len(due)


class MemoryStore:
    """
    In-memory HierarchicalStore for scheduler logic tests.

    Every call yields to the event loop once so that concurrent operations
    interleave the way they would against a networked store.  Operation names
    listed in ``failing`` raise ConnectionError; ``gate`` (when set) blocks
    reads until it is released.
    """

    def __init__(self) -> None:
        self.nodes: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, str | None]] = []
        self.failing: set[str] = set()
        self.gate: asyncio.Event | None = None

    async def _enter(self, op: str, path: str, key: str | None = None) -> None:
        self.calls.append((op, path, key))
        await asyncio.sleep(0)
        if op == "read" and self.gate is not None:
            await self.gate.wait()
        if op in self.failing:
            msg = f"store unavailable during {op}"
            raise ConnectionError(msg)

    def writes(self) -> list[str | None]:
        return [key for op, _, key in self.calls if op == "write"]

    async def read(self, path: str, key: str) -> Any | None:
        await self._enter("read", path, key)
        return self.nodes.get((path, key))

    async def read_children(self, path: str) -> list[tuple[str, Any]]:
        await self._enter("read_children", path)
        children = [(k, v) for (p, k), v in self.nodes.items() if p == path]
        return sorted(children, key=lambda item: item[0])

    async def write(self, path: str, key: str, value: dict[str, Any]) -> None:
        await self._enter("write", path, key)
        self.nodes[(path, key)] = dict(value)

    async def delete(self, path: str, key: str) -> None:
        await self._enter("delete", path, key)
        self.nodes.pop((path, key), None)


@dataclass
class CompletionRecorder:
    """Completion handler that remembers every (key, task) it was given."""

    calls: list[tuple[str, Any]] = field(default_factory=list)

    def __call__(self, key: str, task: Any) -> None:
        self.calls.append((key, task))

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.calls]
