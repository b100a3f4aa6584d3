"""Task data model, wire codec, and tag dispatch."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from hearth.scheduler.errors import (
    InvalidScheduleTimeError,
    InvalidTaskTagError,
    MalformedTaskError,
    TaskValidationError,
)
from hearth.scheduler.keys import validate_key

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

# Wire field names for one stored task record.
FIELD_ID = "id"
FIELD_TAG = "tag"
FIELD_SCHEDULED_AT = "scheduled_at_ms"
FIELD_PAYLOAD = "payload"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def to_epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime."""
    delta = moment - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(ms: int) -> datetime:
    """Aware UTC datetime for a millisecond epoch timestamp."""
    return _EPOCH + timedelta(milliseconds=ms)


def _normalise_instant(value: object) -> datetime:
    if not isinstance(value, datetime):
        raise InvalidScheduleTimeError(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    # The store keeps millisecond precision; drop the rest up front.
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


@dataclass(frozen=True)
class Task:
    """A one-shot unit of work to run at ``scheduled_at``.

    Attributes:
        key: Unique identifier, also the record name in the durable store.
        tag: Task-kind discriminator used to pick the class on decode.
        scheduled_at: When to run. Naive values are taken as UTC; the value
            is kept in UTC at millisecond precision.
        payload: Optional JSON-serializable data, opaque to the scheduler.
    """

    key: str
    tag: str
    scheduled_at: datetime
    payload: Any = None

    def __post_init__(self) -> None:
        validate_key(self.key)
        if not isinstance(self.tag, str) or not self.tag:
            raise InvalidTaskTagError(self.tag)
        object.__setattr__(self, "scheduled_at", _normalise_instant(self.scheduled_at))

    @property
    def scheduled_at_ms(self) -> int:
        return to_epoch_ms(self.scheduled_at)

    def is_due(self, now: datetime) -> bool:
        """True if the task should already have run at *now*."""
        return self.scheduled_at <= now

    # -- Serialization ---------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Serialize to the durable wire record."""
        record: dict[str, Any] = {
            FIELD_ID: self.key,
            FIELD_TAG: self.tag,
            FIELD_SCHEDULED_AT: self.scheduled_at_ms,
        }
        if self.payload is not None:
            record[FIELD_PAYLOAD] = json.dumps(self.payload)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Task:
        """Deserialize a wire record, raising ``MalformedTaskError`` on bad input."""
        missing = [
            name for name in (FIELD_ID, FIELD_TAG, FIELD_SCHEDULED_AT) if record.get(name) is None
        ]
        if missing:
            msg = f"Task record missing field(s): {', '.join(missing)}"
            raise MalformedTaskError(msg)

        scheduled_ms = record[FIELD_SCHEDULED_AT]
        if isinstance(scheduled_ms, bool) or not isinstance(scheduled_ms, int):
            msg = f"{FIELD_SCHEDULED_AT} must be an integer, got {scheduled_ms!r}"
            raise MalformedTaskError(msg)

        payload = None
        raw_payload = record.get(FIELD_PAYLOAD)
        if raw_payload is not None:
            try:
                payload = json.loads(raw_payload)
            except (TypeError, ValueError) as exc:
                msg = f"Undecodable payload for task {record[FIELD_ID]!r}"
                raise MalformedTaskError(msg) from exc

        try:
            return cls(
                key=record[FIELD_ID],
                tag=record[FIELD_TAG],
                scheduled_at=from_epoch_ms(scheduled_ms),
                payload=payload,
            )
        except (OverflowError, OSError) as exc:
            msg = f"{FIELD_SCHEDULED_AT} out of range: {scheduled_ms!r}"
            raise MalformedTaskError(msg) from exc


@dataclass(frozen=True)
class UnknownTask:
    """Stand-in for a stored record that could not be decoded.

    Never scheduled or fired; it only lets one bad record be reported without
    aborting a whole namespace listing.
    """

    key: str
    reason: str
    tag: str | None = None
    record: Any = field(default=None, compare=False)


class TaskRegistry:
    """Maps tags to the Task class that decodes them.

    By default any non-empty tag without a registration decodes to the base
    ``Task``.  With ``strict=True`` only registered tags decode; the rest come
    back as ``UnknownTask``.
    """

    def __init__(
        self, kinds: Mapping[str, type[Task]] | None = None, *, strict: bool = False
    ) -> None:
        self._kinds: dict[str, type[Task]] = {}
        self._strict = strict
        for tag, task_cls in (kinds or {}).items():
            self.register(tag, task_cls)

    def register(self, tag: str, task_cls: type[Task] = Task) -> type[Task]:
        """Bind *tag* to *task_cls*. Returns the class."""
        if not isinstance(tag, str) or not tag:
            raise InvalidTaskTagError(tag)
        if not (isinstance(task_cls, type) and issubclass(task_cls, Task)):
            msg = f"{task_cls!r} is not a Task subclass"
            raise TypeError(msg)
        self._kinds[tag] = task_cls
        return task_cls

    @property
    def strict(self) -> bool:
        return self._strict

    def kind(self, tag: str) -> type[Task] | None:
        """Return the class that decodes *tag*, or None if it would not decode."""
        if tag in self._kinds:
            return self._kinds[tag]
        if self._strict or not isinstance(tag, str) or not tag:
            return None
        return Task

    def check(self, task: Task) -> None:
        """Raise ``InvalidTaskTagError`` unless *task* decodes back to its own class."""
        task_cls = self.kind(task.tag)
        if task_cls is None:
            raise InvalidTaskTagError(task.tag, "Task tag is not registered")
        if type(task) is not task_cls:
            msg = f"Task tag decodes to {task_cls.__name__}, not {type(task).__name__}"
            raise InvalidTaskTagError(task.tag, msg)

    def __contains__(self, tag: object) -> bool:
        return tag in self._kinds

    def __iter__(self) -> Iterator[str]:
        return iter(self._kinds)

    def __len__(self) -> int:
        return len(self._kinds)

    def decode(self, key: str, record: object) -> Task | UnknownTask:
        """Decode the record stored under *key*; never raises for bad data."""
        if not isinstance(record, dict):
            return UnknownTask(key=key, reason="record is not an object", record=record)

        tag = record.get(FIELD_TAG)
        tag_name = tag if isinstance(tag, str) else None
        task_cls = self.kind(tag_name) if tag_name else None
        if task_cls is None:
            return UnknownTask(
                key=key, reason=f"unregistered tag {tag!r}", tag=tag_name, record=record
            )

        try:
            task = task_cls.from_record(record)
        except TaskValidationError as exc:
            return UnknownTask(key=key, reason=str(exc), tag=tag_name, record=record)

        if task.key != key:
            return UnknownTask(
                key=key,
                reason=f"record id {task.key!r} does not match its key",
                tag=tag_name,
                record=record,
            )
        return task
