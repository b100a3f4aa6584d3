"""One-shot timer primitive backed by APScheduler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from hearth.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from apscheduler.job import Job

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Stop a callback that has not fired yet. Safe after firing."""
        ...


class TimerService(Protocol):
    """What the Scheduler needs from a timer: arm, cancel, start, stop."""

    def start(self) -> None: ...

    def shutdown(self) -> None: ...

    def register(
        self,
        key: str,
        run_at: datetime,
        callback: Callable[[str], Awaitable[None]],
    ) -> TimerHandle:
        """Call ``callback(key)`` once at *run_at*."""
        ...


class _JobHandle:
    """TimerHandle over an APScheduler Job."""

    def __init__(self, job: Job) -> None:
        self._job = job

    def cancel(self) -> None:
        try:
            self._job.remove()
        except JobLookupError:
            logger.debug("Job %s already gone (fired or removed)", self._job.id)


class APSchedulerTimers:
    """Runs each timer as a ``DateTrigger`` job on an ``AsyncIOScheduler``.

    Jobs run on the event loop that was current at ``start()``, so callbacks
    never race the scheduler's own state from another thread.

    Args:
        timezone: IANA timezone string (default from settings).
    """

    def __init__(self, timezone: str | None = None) -> None:
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if not self._running:
            self._scheduler.start()
            self._running = True
            logger.info("Timer service started (tz=%s)", self._timezone)

    def shutdown(self) -> None:
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Timer service stopped")

    # -- Timers ----------------------------------------------------------------

    def register(
        self,
        key: str,
        run_at: datetime,
        callback: Callable[[str], Awaitable[None]],
    ) -> _JobHandle:
        job = self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_at, timezone=self._timezone),
            id=key,
            name=key,
            args=[key],
            misfire_grace_time=None,
            replace_existing=True,
        )
        return _JobHandle(job)

    def pending_keys(self) -> list[str]:
        """Keys of jobs APScheduler still holds (diagnostics and tests)."""
        return [job.id for job in self._scheduler.get_jobs()]
