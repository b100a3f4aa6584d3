"""Durable one-shot scheduling: models, storage, timers, and orchestration."""

from hearth.scheduler.engine import Scheduler
from hearth.scheduler.errors import (
    InvalidScheduleTimeError,
    InvalidStoreReferenceError,
    InvalidTaskKeyError,
    InvalidTaskTagError,
    MalformedTaskError,
    RecoveryError,
    ScheduledInPastError,
    SchedulerClosedError,
    SchedulerError,
    StoreError,
    TaskValidationError,
)
from hearth.scheduler.keys import is_valid_key, make_task_key
from hearth.scheduler.models import Task, TaskRegistry, UnknownTask
from hearth.scheduler.redundancy import RedundancyService
from hearth.scheduler.store import HierarchicalStore, NodeStore
from hearth.scheduler.timers import APSchedulerTimers, TimerService

__all__ = [
    "Task",
    "UnknownTask",
    "TaskRegistry",
    "NodeStore",
    "HierarchicalStore",
    "RedundancyService",
    "APSchedulerTimers",
    "TimerService",
    "Scheduler",
    "is_valid_key",
    "make_task_key",
    "SchedulerError",
    "TaskValidationError",
    "InvalidTaskKeyError",
    "InvalidTaskTagError",
    "InvalidScheduleTimeError",
    "MalformedTaskError",
    "ScheduledInPastError",
    "InvalidStoreReferenceError",
    "StoreError",
    "RecoveryError",
    "SchedulerClosedError",
]
