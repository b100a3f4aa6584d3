"""libsql access for the durable task store, run off the event loop.

The ``libsql`` driver is synchronous; every call here goes through
``asyncio.to_thread()``.  ``connect()`` picks the database in this order:

- *local_path* (tests, embedded use) → local SQLite file
- *remote_url*, else ``TURSO_DATABASE_URL`` → remote libsql server
- ``DATABASE_PATH`` → local SQLite file
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import libsql

from hearth.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def _query(conn: Any, sql: str, params: tuple, *, one: bool) -> Any:
    cursor = conn.execute(sql, params)
    return cursor.fetchone() if one else cursor.fetchall()


class AsyncConnection:
    """One libsql connection; use as ``async with await connect() as db``."""

    def __init__(self, conn: Any, target: str) -> None:
        self._conn = conn
        self.target = target

    async def __aenter__(self) -> AsyncConnection:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a statement and return the number of rows it touched."""
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return cursor.rowcount

    async def fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        return await asyncio.to_thread(_query, self._conn, sql, params, one=True)

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        return await asyncio.to_thread(_query, self._conn, sql, params, one=False)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_file(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = libsql.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def connect(
    local_path: Path | None = None,
    *,
    remote_url: str | None = None,
    auth_token: str | None = None,
) -> AsyncConnection:
    """Open a connection to the task database."""
    if local_path is None:
        url = remote_url or settings.turso_database_url
        if url:
            token = auth_token if auth_token is not None else settings.turso_auth_token
            conn = await asyncio.to_thread(libsql.connect, database=url, auth_token=token)
            logger.debug("Connected to remote libsql at %s", url)
            return AsyncConnection(conn, url)
        local_path = settings.database_path

    conn = await asyncio.to_thread(_open_file, local_path)
    return AsyncConnection(conn, str(local_path))
