"""Exception hierarchy for the scheduler and its durable store."""

INVALID_STORE_REFERENCE = "Attempt to instantiate with an invalid store reference."
SCHEDULED_IN_PAST = "Cannot schedule a task to complete in a time that is the past."
INVALID_TASK_KEY = "Invalid key provided."
INVALID_TASK_TAG = "The task tag must be a valid string with a length greater than 0."
INVALID_TASK_DATE = "The task must have a valid scheduled datetime."


class SchedulerError(Exception):
    """Base class for everything raised by hearth.scheduler."""


class TaskValidationError(SchedulerError, ValueError):
    """A Task could not be constructed or decoded."""


class InvalidTaskKeyError(TaskValidationError):
    """Raised for an empty key or one with characters illegal in store paths."""

    def __init__(self, key: object = None) -> None:
        super().__init__(f"{INVALID_TASK_KEY} ({key!r})")
        self.key = key


class InvalidTaskTagError(TaskValidationError):
    """Raised for an empty or non-string tag, or one the registry cannot decode."""

    def __init__(self, tag: object = None, reason: str = INVALID_TASK_TAG) -> None:
        super().__init__(f"{reason} ({tag!r})")
        self.tag = tag


class InvalidScheduleTimeError(TaskValidationError):
    """Raised when ``scheduled_at`` is missing or not a datetime."""

    def __init__(self, value: object = None) -> None:
        super().__init__(f"{INVALID_TASK_DATE} ({value!r})")
        self.value = value


class MalformedTaskError(TaskValidationError):
    """A stored record is missing fields or holds values of the wrong shape."""


class ScheduledInPastError(SchedulerError, ValueError):
    """Raised by ``schedule`` when the task's instant is not in the future."""

    def __init__(self, key: str) -> None:
        super().__init__(f"{SCHEDULED_IN_PAST} (key={key!r})")
        self.key = key


class InvalidStoreReferenceError(SchedulerError, ValueError):
    """Raised when a RedundancyService is built without a store."""

    def __init__(self) -> None:
        super().__init__(INVALID_STORE_REFERENCE)


class StoreError(SchedulerError):
    """A durable store call failed (connectivity, IO, driver error)."""

    def __init__(self, operation: str, key: str | None = None) -> None:
        target = f" for key {key!r}" if key is not None else ""
        super().__init__(f"Durable store {operation} failed{target}")
        self.operation = operation
        self.key = key


class RecoveryError(SchedulerError):
    """Startup recovery could not read the durable store."""


class SchedulerClosedError(SchedulerError):
    """The scheduler has been shut down."""
