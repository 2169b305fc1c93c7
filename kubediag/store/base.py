"""Resource store contract consumed by the stage engines.

The store is the single authority for Abnormal and processor objects.  It is
versioned: ``update_abnormal_status`` must reject a write whose
``metadata.resource_version`` is stale with ``ConflictError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from kubediag.models.abnormal import Abnormal, ProcessorType
from kubediag.models.processor import Processor


class ResourceStoreError(Exception):
    """Base class for store failures.  Treated as transient by callers."""


class NotFoundError(ResourceStoreError):
    """The requested object does not exist (or was deleted)."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} {namespace}/{name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ConflictError(ResourceStoreError):
    """An update was based on a stale resource version."""


class ResourceStore(ABC):
    """Versioned get/list/watch/update-status access to cluster objects."""

    @abstractmethod
    async def wait_for_cache_sync(self) -> bool:
        """Block until the store can serve reads.  False means never."""

    @abstractmethod
    async def get_abnormal(self, namespace: str, name: str) -> Abnormal:
        """Return the live Abnormal.

        Raises:
            NotFoundError: the Abnormal does not exist.
            ResourceStoreError: any other failure.
        """

    @abstractmethod
    async def list_abnormals(self) -> list[Abnormal]:
        """Return every Abnormal in the cluster."""

    @abstractmethod
    async def update_abnormal_status(self, abnormal: Abnormal) -> Abnormal:
        """Persist ``abnormal.status`` and return the stored object.

        Raises:
            NotFoundError: the Abnormal was deleted.
            ConflictError: ``abnormal.metadata.resource_version`` is stale.
            ResourceStoreError: any other failure.
        """

    @abstractmethod
    async def list_processors(self, processor_type: ProcessorType) -> list[Processor]:
        """Return processors of *processor_type* ordered by (namespace, name)."""

    @abstractmethod
    def watch_abnormals(self) -> AsyncIterator[Abnormal]:
        """Yield Abnormals as they are created or modified."""
