"""In-memory ResourceStore.

Backs ``store.backend=memory`` and the test suite.  Objects are deep-copied
on the way in and out so callers only ever hold working copies, and every
write bumps a monotonically increasing resource version.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections.abc import AsyncIterator
from uuid import uuid4

import structlog

from kubediag.models.abnormal import Abnormal, NamespacedName, ProcessorType
from kubediag.models.processor import Processor
from kubediag.store.base import ConflictError, NotFoundError, ResourceStore

_log = structlog.get_logger(component="store.memory")


class InMemoryResourceStore(ResourceStore):
    """Versioned dict-backed store with fan-out watch."""

    def __init__(self) -> None:
        self._abnormals: dict[NamespacedName, Abnormal] = {}
        self._processors: dict[ProcessorType, dict[NamespacedName, Processor]] = {t: {} for t in ProcessorType}
        self._versions = itertools.count(1)
        self._watchers: list[asyncio.Queue[Abnormal]] = []

    async def wait_for_cache_sync(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Abnormals
    # ------------------------------------------------------------------

    def create_abnormal(self, abnormal: Abnormal) -> Abnormal:
        """Store a new Abnormal, assigning uid and resource version."""
        key = abnormal.key
        if key in self._abnormals:
            raise ConflictError(f"Abnormal {key} already exists")
        stored = copy.deepcopy(abnormal)
        stored.metadata.uid = stored.metadata.uid or str(uuid4())
        stored.metadata.resource_version = str(next(self._versions))
        self._abnormals[key] = stored
        self._notify(stored)
        return copy.deepcopy(stored)

    def delete_abnormal(self, namespace: str, name: str) -> None:
        key = NamespacedName(namespace=namespace, name=name)
        if self._abnormals.pop(key, None) is None:
            raise NotFoundError("Abnormal", namespace, name)

    async def get_abnormal(self, namespace: str, name: str) -> Abnormal:
        stored = self._abnormals.get(NamespacedName(namespace=namespace, name=name))
        if stored is None:
            raise NotFoundError("Abnormal", namespace, name)
        return copy.deepcopy(stored)

    async def list_abnormals(self) -> list[Abnormal]:
        return [copy.deepcopy(self._abnormals[k]) for k in sorted(self._abnormals, key=_sort_key)]

    async def update_abnormal_status(self, abnormal: Abnormal) -> Abnormal:
        key = abnormal.key
        stored = self._abnormals.get(key)
        if stored is None:
            raise NotFoundError("Abnormal", key.namespace, key.name)
        if abnormal.metadata.resource_version != stored.metadata.resource_version:
            raise ConflictError(
                f"Abnormal {key} has been modified: resource version "
                f"{abnormal.metadata.resource_version!r} != {stored.metadata.resource_version!r}"
            )
        stored.status = copy.deepcopy(abnormal.status)
        stored.metadata.resource_version = str(next(self._versions))
        _log.debug("abnormal_status_updated", abnormal=str(key), resource_version=stored.metadata.resource_version)
        self._notify(stored)
        return copy.deepcopy(stored)

    async def watch_abnormals(self) -> AsyncIterator[Abnormal]:
        queue: asyncio.Queue[Abnormal] = asyncio.Queue()
        self._watchers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(queue)

    def _notify(self, abnormal: Abnormal) -> None:
        for queue in self._watchers:
            queue.put_nowait(copy.deepcopy(abnormal))

    # ------------------------------------------------------------------
    # Processors
    # ------------------------------------------------------------------

    def add_processor(self, processor: Processor) -> None:
        self._processors[processor.type][processor.key] = copy.deepcopy(processor)

    def remove_processor(self, processor_type: ProcessorType, namespace: str, name: str) -> None:
        self._processors[processor_type].pop(NamespacedName(namespace=namespace, name=name), None)

    async def list_processors(self, processor_type: ProcessorType) -> list[Processor]:
        catalog = self._processors[processor_type]
        return [copy.deepcopy(catalog[k]) for k in sorted(catalog, key=_sort_key)]


def _sort_key(key: NamespacedName) -> tuple[str, str]:
    return (key.namespace, key.name)
