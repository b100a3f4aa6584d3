"""Scheduler: reconciles local timers with the durable task store."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from hearth.scheduler.errors import (
    InvalidStoreReferenceError,
    RecoveryError,
    ScheduledInPastError,
    SchedulerClosedError,
    StoreError,
)
from hearth.scheduler.models import Task, UnknownTask
from hearth.scheduler.timers import APSchedulerTimers

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    from hearth.scheduler.redundancy import RedundancyService
    from hearth.scheduler.timers import TimerHandle, TimerService

    CompletionHandler = Callable[[str, Task], Awaitable[None] | None]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False)
class _ArmedTimer:
    """One registration in the local timer map; identity marks its generation."""

    key: str
    run_at: datetime
    handle: TimerHandle | None = None


class _KeyLocks:
    """Per-key asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._owners: dict[str, asyncio.Task[Any] | None] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        current = asyncio.current_task()
        if key in self._owners and self._owners[key] is current:
            # asyncio.Lock is not re-entrant; waiting here would hang forever.
            msg = f"Re-entrant scheduler operation on key {key!r}"
            raise RuntimeError(msg)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                self._owners[key] = current
                try:
                    yield
                finally:
                    del self._owners[key]
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class Scheduler:
    """Schedules one-shot tasks and keeps them alive across restarts.

    The durable record is the source of truth for whether a task still has
    to run; the local timer map only says whether this process has armed a
    timer for it.  Operations on the same key are serialized.

    Args:
        redundancy: RedundancyService the tasks are mirrored into.
        on_complete: Called as ``on_complete(key, task)`` when a task fires;
            may be a plain function or a coroutine function.  It runs while
            the key is locked, so it must not await ``schedule``/``cancel``
            for that same key (spawn a task for that instead).
        timers: Timer primitive (default: APScheduler).
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        redundancy: RedundancyService,
        on_complete: CompletionHandler,
        *,
        timers: TimerService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if redundancy is None:
            raise InvalidStoreReferenceError
        if not callable(on_complete):
            msg = "on_complete must be callable"
            raise TypeError(msg)
        self._redundancy = redundancy
        self._on_complete = on_complete
        self._timers = timers if timers is not None else APSchedulerTimers()
        self._clock = clock or _utcnow
        self._armed: dict[str, _ArmedTimer] = {}
        self._locks = _KeyLocks()
        self._inflight: set[asyncio.Task[Any]] = set()
        self._ready = False
        self._closed = False

    @property
    def ready(self) -> bool:
        """True once startup recovery has completed."""
        return self._ready

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> Scheduler:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self) -> None:
        """Start timers and recover every task left in the durable store.

        Raises ``RecoveryError`` if the store cannot be read; the scheduler
        is then left stopped rather than running with a partial timer map.
        """
        async with self._operation():
            self._timers.start()
            try:
                tasks = await self._redundancy.get_all()
                await self.queue_existing(tasks)
            except StoreError as exc:
                self._disarm_all()
                self._timers.shutdown()
                msg = f"Recovery from {self._redundancy.namespace!r} failed"
                raise RecoveryError(msg) from exc
            self._ready = True
            logger.info(
                "Scheduler ready with %d pending task(s) from %s",
                len(self._armed),
                self._redundancy.namespace,
            )

    async def queue_existing(self, tasks: Iterable[Task | UnknownTask] | None) -> None:
        """Fire tasks that matured while the process was down; arm the rest.

        Keys that already have a local timer are left alone, so running this
        twice over the same tasks is harmless.
        """
        if not tasks:
            return
        async with self._operation():
            now = self._clock()
            fired = queued = skipped = 0
            for task in tasks:
                if isinstance(task, UnknownTask):
                    logger.warning("Skipping undecodable record %s: %s", task.key, task.reason)
                    skipped += 1
                    continue
                async with self._locks.hold(task.key):
                    if task.is_due(now):
                        await self._notify(task.key, task)
                        await self._redundancy.remove(task.key)
                        fired += 1
                    elif task.key not in self._armed:
                        self._arm(task)
                        queued += 1
            logger.info(
                "Recovered tasks: %d fired late, %d queued, %d skipped",
                fired,
                queued,
                skipped,
            )

    async def shutdown(self) -> None:
        """Abort in-flight operations and stop all local timers.

        Durable records are left untouched; the next ``initialize`` picks
        them up again.
        """
        if self._closed:
            return
        self._closed = True
        self._ready = False

        current = asyncio.current_task()
        pending = [op for op in self._inflight if op is not current and not op.done()]
        for op in pending:
            op.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._disarm_all()
        self._timers.shutdown()
        logger.info("Scheduler shut down (%d operation(s) aborted)", len(pending))

    # -- Task management -------------------------------------------------------

    async def schedule(self, task: Task) -> Task:
        """Arm and persist *task*; return the task that governs its key.

        If the key is already stored and armed, the stored task is returned
        and *task* is discarded.  If it is stored but not armed here (just
        recovered), only a local timer is added.  A task whose tag the
        registry would not decode is rejected with ``InvalidTaskTagError``
        before anything is armed or written.
        """
        self._redundancy.registry.check(task)
        if task.is_due(self._clock()):
            raise ScheduledInPastError(task.key)

        async with self._operation(), self._locks.hold(task.key):
            existing = await self._redundancy.fetch(task.key)
            if isinstance(existing, UnknownTask):
                logger.warning(
                    "Replacing undecodable record %s: %s", existing.key, existing.reason
                )
                existing = None

            if existing is not None:
                if task.key in self._armed:
                    logger.debug("Task %s already scheduled; keeping stored copy", task.key)
                    return existing
                self._arm(task)
                logger.info("Armed stored task %s locally (%s)", task.key, task.tag)
                return task

            entry = self._arm(task)
            try:
                await self._redundancy.commit(task)
            except (StoreError, asyncio.CancelledError):
                self._disarm(task.key, entry)
                raise
            logger.info(
                "Scheduled task %s (%s) for %s",
                task.key,
                task.tag,
                task.scheduled_at.isoformat(),
            )
            return task

    async def cancel(self, key: str) -> None:
        """Cancel a pending task; unknown or already-fired keys are a no-op."""
        async with self._operation(), self._locks.hold(key):
            entry = self._armed.get(key)
            if entry is None:
                logger.debug("Cancel for %s ignored: no local timer", key)
                return
            await self._redundancy.remove(key)
            self._disarm(key, entry)
            logger.info("Cancelled task: %s", key)

    async def get(self, key: str) -> Task | UnknownTask | None:
        """Return the stored task for *key*, or None."""
        async with self._operation():
            return await self._redundancy.fetch(key)

    def get_pending_count(self) -> int:
        """Number of timers armed in this process (not the store's count)."""
        return len(self._armed)

    def pending_keys(self) -> list[str]:
        return list(self._armed)

    # -- Internal --------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _operation(self) -> AsyncIterator[None]:
        """Track the calling asyncio task so ``shutdown`` can abort it."""
        if self._closed:
            msg = "Scheduler has been shut down"
            raise SchedulerClosedError(msg)
        current = asyncio.current_task()
        added = current is not None and current not in self._inflight
        if added:
            self._inflight.add(current)
        try:
            yield
        finally:
            if added:
                self._inflight.discard(current)

    def _arm(self, task: Task) -> _ArmedTimer:
        entry = _ArmedTimer(key=task.key, run_at=task.scheduled_at)

        async def fire(key: str) -> None:
            await self._fire(key, entry)

        previous = self._armed.get(task.key)
        if previous is not None and previous.handle is not None:
            previous.handle.cancel()
        entry.handle = self._timers.register(task.key, task.scheduled_at, fire)
        self._armed[task.key] = entry
        return entry

    def _disarm(self, key: str, entry: _ArmedTimer) -> None:
        if self._armed.get(key) is entry:
            del self._armed[key]
        if entry.handle is not None:
            entry.handle.cancel()

    def _disarm_all(self) -> None:
        for key, entry in list(self._armed.items()):
            self._disarm(key, entry)

    def _evict(self, key: str, entry: _ArmedTimer) -> None:
        if self._armed.get(key) is entry:
            del self._armed[key]

    async def _fire(self, key: str, entry: _ArmedTimer) -> None:
        """Timer callback: notify and drop the record if it still exists."""
        if self._closed:
            return
        async with self._operation(), self._locks.hold(key):
            if self._armed.get(key) is not entry:
                logger.debug("Ignoring superseded timer for %s", key)
                return
            try:
                task = await self._redundancy.fetch(key)
            except StoreError:
                self._evict(key, entry)
                logger.exception("Could not read task %s at fire time; left for recovery", key)
                return

            if task is None:
                self._evict(key, entry)
                logger.debug("Task %s fired after its record was removed", key)
                return
            if isinstance(task, UnknownTask):
                self._evict(key, entry)
                logger.error("Task %s fired but its record is undecodable: %s", key, task.reason)
                return

            await self._notify(key, task)
            try:
                await self._redundancy.remove(key)
            except StoreError:
                logger.exception("Task %s ran but its record could not be removed", key)
            finally:
                self._evict(key, entry)
            logger.info("Fired task %s (%s)", key, task.tag)

    async def _notify(self, key: str, task: Task) -> None:
        """Invoke the completion handler, logging rather than raising its errors."""
        try:
            result = self._on_complete(key, task)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Completion handler failed for task %s", key)
