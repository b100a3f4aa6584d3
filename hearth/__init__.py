"""hearth: one-shot task scheduling that survives restarts."""

from hearth.config import Settings, settings
from hearth.logging_setup import configure_logging
from hearth.scheduler import (
    NodeStore,
    RedundancyService,
    Scheduler,
    Task,
    TaskRegistry,
    UnknownTask,
)

__all__ = [
    "Settings",
    "settings",
    "configure_logging",
    "NodeStore",
    "RedundancyService",
    "Scheduler",
    "Task",
    "TaskRegistry",
    "UnknownTask",
]
