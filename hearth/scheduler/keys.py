"""Store key rules shared by tasks and the durable store."""

from __future__ import annotations

import re
import uuid

from hearth.scheduler.errors import InvalidTaskKeyError

# . # $ [ ] / plus ASCII control characters (0x00-0x1F, 0x7F)
_ILLEGAL_KEY_CHARS = re.compile(r"[\[\].#$/\x00-\x1f\x7f]")


def is_valid_key(key: object) -> bool:
    """Return True if *key* can name a record in the hierarchical store."""
    if not isinstance(key, str) or not key:
        return False
    return _ILLEGAL_KEY_CHARS.search(key) is None


def validate_key(key: object) -> str:
    """Return *key* unchanged, or raise ``InvalidTaskKeyError``."""
    if not is_valid_key(key):
        raise InvalidTaskKeyError(key)
    return key  # type: ignore[return-value]


def make_task_key() -> str:
    """Generate a new task key."""
    return uuid.uuid4().hex
