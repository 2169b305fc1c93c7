"""Resource store layer for kubediag.

The stage engines never talk to the cluster directly; every read and write
of Abnormals and processor descriptors goes through a ResourceStore.

Submodules:
    base        -- ResourceStore ABC and the NotFound/Conflict error hierarchy.
    memory      -- Versioned in-memory store with fan-out watch.
    kubernetes  -- kubernetes-asyncio CustomObjectsApi adapter.
"""

from kubediag.store.base import ConflictError, NotFoundError, ResourceStore, ResourceStoreError
from kubediag.store.memory import InMemoryResourceStore

__all__ = [
    "ConflictError",
    "InMemoryResourceStore",
    "NotFoundError",
    "ResourceStore",
    "ResourceStoreError",
]
