"""NodeStore: hierarchical key-value records on libsql."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from hearth.db import connect
from hearth.scheduler.keys import validate_key

if TYPE_CHECKING:
    from pathlib import Path

    from hearth.db import AsyncConnection

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS store_nodes (
    path  TEXT NOT NULL,
    key   TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (path, key)
)
"""


@runtime_checkable
class HierarchicalStore(Protocol):
    """Durable store the redundancy layer is written against.

    Records live at ``path/key``; ``path`` is a ``/``-separated list of
    segments that each follow the key rules in ``hearth.scheduler.keys``.
    """

    async def read(self, path: str, key: str) -> Any | None:
        """Return the value at ``path/key``, or None if absent."""
        ...

    async def read_children(self, path: str) -> list[tuple[str, Any]]:
        """Return ``(key, value)`` for every child of *path*, ordered by key."""
        ...

    async def write(self, path: str, key: str, value: dict[str, Any]) -> None:
        """Set ``path/key`` to *value*, replacing anything already there."""
        ...

    async def delete(self, path: str, key: str) -> None:
        """Remove ``path/key``. Succeeds if it does not exist."""
        ...


def normalise_path(path: str) -> str:
    """Validate *path* segment by segment and return it without stray slashes."""
    segments = [part for part in path.split("/") if part]
    if not segments:
        msg = f"Store path must have at least one segment: {path!r}"
        raise ValueError(msg)
    for segment in segments:
        validate_key(segment)
    return "/".join(segments)


def _decode(raw: str) -> Any:
    # Corrupt rows come back as raw text; decoding them is the caller's problem.
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Undecodable JSON in store row (%d chars)", len(raw))
        return raw


class NodeStore:
    """Stores JSON records in SQLite / Turso, one row per ``(path, key)``.

    Pass an explicit *db_path* for a local file (e.g. ``tmp_path / "test.db"``
    in tests), or *remote_url* / ``TURSO_DATABASE_URL`` for a libsql server.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        remote_url: str | None = None,
        auth_token: str | None = None,
    ) -> None:
        self._db_path = db_path
        self._remote_url = remote_url
        self._auth_token = auth_token
        self._table_ready = False

    async def _open(self) -> AsyncConnection:
        db = await connect(self._db_path, remote_url=self._remote_url, auth_token=self._auth_token)
        if not self._table_ready:
            try:
                await db.execute(_CREATE_TABLE)
                await db.commit()
            except BaseException:
                await db.close()
                raise
            self._table_ready = True
        return db

    # -- HierarchicalStore -----------------------------------------------------

    async def read(self, path: str, key: str) -> Any | None:
        path = normalise_path(path)
        validate_key(key)
        async with await self._open() as db:
            row = await db.fetchone(
                "SELECT value FROM store_nodes WHERE path = ? AND key = ?", (path, key)
            )
        return None if row is None else _decode(row[0])

    async def read_children(self, path: str) -> list[tuple[str, Any]]:
        path = normalise_path(path)
        async with await self._open() as db:
            rows = await db.fetchall(
                "SELECT key, value FROM store_nodes WHERE path = ? ORDER BY key", (path,)
            )
        return [(key, _decode(value)) for key, value in rows]

    async def write(self, path: str, key: str, value: dict[str, Any]) -> None:
        path = normalise_path(path)
        validate_key(key)
        encoded = json.dumps(value)
        async with await self._open() as db:
            await db.execute(
                "INSERT OR REPLACE INTO store_nodes (path, key, value) VALUES (?, ?, ?)",
                (path, key, encoded),
            )
            await db.commit()
        logger.debug("Wrote %s/%s", path, key)

    async def delete(self, path: str, key: str) -> None:
        path = normalise_path(path)
        validate_key(key)
        async with await self._open() as db:
            removed = await db.execute(
                "DELETE FROM store_nodes WHERE path = ? AND key = ?", (path, key)
            )
            await db.commit()
        if removed > 0:
            logger.debug("Deleted %s/%s", path, key)
