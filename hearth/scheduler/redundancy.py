"""RedundancyService: durable CRUD over Task records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hearth.config import settings
from hearth.scheduler.errors import InvalidStoreReferenceError, StoreError
from hearth.scheduler.keys import validate_key
from hearth.scheduler.models import Task, TaskRegistry, UnknownTask
from hearth.scheduler.store import normalise_path

if TYPE_CHECKING:
    from hearth.scheduler.store import HierarchicalStore

logger = logging.getLogger(__name__)


class RedundancyService:
    """Mirrors tasks into a hierarchical store under one namespace.

    Pure storage: it knows nothing about timers.  Every store failure is
    re-raised as ``StoreError`` with the driver error chained.

    Args:
        store: The durable store collaborator.
        registry: Tag → Task class table used to decode records.
        namespace: Store path the records live under (default from settings).
    """

    def __init__(
        self,
        store: HierarchicalStore,
        registry: TaskRegistry | None = None,
        namespace: str | None = None,
    ) -> None:
        if store is None:
            raise InvalidStoreReferenceError
        self._store = store
        self._registry = registry if registry is not None else TaskRegistry()
        self._namespace = normalise_path(namespace or settings.store_namespace)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    async def get_all(self) -> list[Task | UnknownTask]:
        """Return every stored task; an empty namespace yields ``[]``."""
        try:
            children = await self._store.read_children(self._namespace)
        except Exception as exc:
            raise StoreError("read_children") from exc

        tasks = [self._registry.decode(key, value) for key, value in children]
        unknown = sum(1 for task in tasks if isinstance(task, UnknownTask))
        if unknown:
            logger.warning(
                "%d of %d stored record(s) in %s could not be decoded",
                unknown,
                len(tasks),
                self._namespace,
            )
        return tasks

    async def fetch(self, key: str) -> Task | UnknownTask | None:
        """Return the task stored at *key*, or None if there is none."""
        validate_key(key)
        try:
            value = await self._store.read(self._namespace, key)
        except Exception as exc:
            raise StoreError("read", key) from exc
        if value is None:
            return None
        return self._registry.decode(key, value)

    async def commit(self, task: Task) -> None:
        """Upsert *task*; an existing record at the same key is overwritten.

        Raises ``InvalidTaskTagError`` if the registry would not decode the
        record back into *task*.
        """
        validate_key(task.key)
        self._registry.check(task)
        try:
            await self._store.write(self._namespace, task.key, task.to_record())
        except Exception as exc:
            raise StoreError("write", task.key) from exc
        logger.debug("Committed task %s (%s)", task.key, task.tag)

    async def remove(self, key: str) -> None:
        """Delete the record at *key*; a missing record is not an error."""
        validate_key(key)
        try:
            await self._store.delete(self._namespace, key)
        except Exception as exc:
            raise StoreError("delete", key) from exc
        logger.debug("Removed task %s", key)
