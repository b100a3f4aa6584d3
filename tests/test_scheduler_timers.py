"""Tests for APSchedulerTimers: the real timer primitive, short delays."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from hearth.scheduler.timers import APSchedulerTimers, TimerService


@pytest.fixture
async def timers():
    service = APSchedulerTimers(timezone="UTC")
    service.start()
    yield service
    service.shutdown()


def _soon(seconds: float = 0.2) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=seconds)


def test_satisfies_protocol() -> None:
    service: TimerService = APSchedulerTimers(timezone="UTC")
    assert hasattr(service, "register")


async def test_start_and_shutdown_flags() -> None:
    service = APSchedulerTimers(timezone="UTC")
    assert service.running is False

    service.start()
    service.start()
    assert service.running is True

    service.shutdown()
    service.shutdown()
    assert service.running is False


async def test_register_fires_callback_with_key(timers: APSchedulerTimers) -> None:
    fired = asyncio.Event()
    seen: list[str] = []

    async def callback(key: str) -> None:
        seen.append(key)
        fired.set()

    timers.register("task1", _soon(), callback)
    assert timers.pending_keys() == ["task1"]

    await asyncio.wait_for(fired.wait(), timeout=3)
    assert seen == ["task1"]
    assert timers.pending_keys() == []


async def test_cancel_prevents_firing(timers: APSchedulerTimers) -> None:
    seen: list[str] = []

    async def callback(key: str) -> None:
        seen.append(key)

    handle = timers.register("task1", _soon(0.3), callback)
    handle.cancel()

    await asyncio.sleep(0.6)
    assert seen == []
    assert timers.pending_keys() == []


async def test_cancel_after_fire_is_safe(timers: APSchedulerTimers) -> None:
    fired = asyncio.Event()

    async def callback(key: str) -> None:
        fired.set()

    handle = timers.register("task1", _soon(0.1), callback)
    await asyncio.wait_for(fired.wait(), timeout=3)

    # Should not raise
    handle.cancel()
    handle.cancel()


async def test_register_same_key_replaces_job(timers: APSchedulerTimers) -> None:
    seen: list[str] = []

    async def first(key: str) -> None:
        seen.append("first")

    async def second(key: str) -> None:
        seen.append("second")

    timers.register("task1", _soon(5), first)
    timers.register("task1", _soon(0.1), second)
    assert timers.pending_keys() == ["task1"]

    await asyncio.sleep(0.5)
    assert seen == ["second"]
