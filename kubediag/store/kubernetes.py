"""ResourceStore backed by the Kubernetes API via kubernetes-asyncio.

Abnormals and processors are custom resources in the
``diagnosis.kubediag.io/v1`` group.  API errors are translated into the
store's exception hierarchy: 404 -> NotFoundError, 409 -> ConflictError,
everything else -> ResourceStoreError.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubediag.models.abnormal import API_GROUP, API_VERSION, Abnormal, ProcessorType
from kubediag.models.processor import PROCESSOR_PLURALS, Processor
from kubediag.store.base import ConflictError, NotFoundError, ResourceStore, ResourceStoreError

_log = structlog.get_logger(component="store.kubernetes")

_ABNORMAL_PLURAL = "abnormals"
_SYNC_MAX_ATTEMPTS = 10
_BACKOFF_INITIAL_SECONDS = 1.0
_BACKOFF_MAX_SECONDS = 30.0


def _translate(exc: ApiException, kind: str, namespace: str = "", name: str = "") -> ResourceStoreError:
    if exc.status == 404:
        return NotFoundError(kind, namespace, name)
    if exc.status == 409:
        return ConflictError(f"{kind} {namespace}/{name} conflict: {exc.reason}")
    return ResourceStoreError(f"{kind} request failed ({exc.status}): {exc.reason}")


class KubernetesResourceStore(ResourceStore):
    """Reads and writes diagnosis custom resources through CustomObjectsApi.

    Args:
        api_client: Optional pre-configured ``ApiClient``.  The default
                    client picks up whatever configuration was loaded by
                    ``kubernetes_asyncio.config``.
    """

    def __init__(self, api_client: Any = None) -> None:
        self._api = k8s_client.CustomObjectsApi(api_client)

    async def wait_for_cache_sync(self) -> bool:
        """Confirm the Abnormal API is reachable, retrying with back-off."""
        delay = _BACKOFF_INITIAL_SECONDS
        for attempt in range(1, _SYNC_MAX_ATTEMPTS + 1):
            try:
                await self._api.list_cluster_custom_object(API_GROUP, API_VERSION, _ABNORMAL_PLURAL, limit=1)
                return True
            except (ApiException, aiohttp.ClientError, OSError) as exc:
                _log.warning("cache_sync_attempt_failed", attempt=attempt, error=str(exc))
                await asyncio.sleep(delay)
                delay = min(delay * 2, _BACKOFF_MAX_SECONDS)
        return False

    async def get_abnormal(self, namespace: str, name: str) -> Abnormal:
        try:
            raw = await self._api.get_namespaced_custom_object(API_GROUP, API_VERSION, namespace, _ABNORMAL_PLURAL, name)
        except ApiException as exc:
            raise _translate(exc, "Abnormal", namespace, name) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ResourceStoreError(f"failed to get Abnormal {namespace}/{name}: {exc}") from exc
        return self._decode_abnormal(raw)

    async def list_abnormals(self) -> list[Abnormal]:
        try:
            raw = await self._api.list_cluster_custom_object(API_GROUP, API_VERSION, _ABNORMAL_PLURAL)
        except ApiException as exc:
            raise _translate(exc, "Abnormal") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ResourceStoreError(f"failed to list Abnormals: {exc}") from exc
        return [self._decode_abnormal(item) for item in raw.get("items", [])]

    async def update_abnormal_status(self, abnormal: Abnormal) -> Abnormal:
        key = abnormal.key
        try:
            raw = await self._api.replace_namespaced_custom_object_status(
                API_GROUP,
                API_VERSION,
                key.namespace,
                _ABNORMAL_PLURAL,
                key.name,
                abnormal.to_dict(),
            )
        except ApiException as exc:
            raise _translate(exc, "Abnormal", key.namespace, key.name) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ResourceStoreError(f"failed to update Abnormal {key}: {exc}") from exc
        return self._decode_abnormal(raw)

    async def list_processors(self, processor_type: ProcessorType) -> list[Processor]:
        plural = PROCESSOR_PLURALS[processor_type]
        try:
            raw = await self._api.list_cluster_custom_object(API_GROUP, API_VERSION, plural)
        except ApiException as exc:
            raise _translate(exc, processor_type.value) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ResourceStoreError(f"failed to list {plural}: {exc}") from exc

        processors = []
        for item in raw.get("items", []):
            try:
                processors.append(Processor.from_dict(item, processor_type))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                _log.warning("processor_decode_failed", kind=processor_type.value, error=str(exc))
        processors.sort(key=lambda p: (p.key.namespace, p.key.name))
        return processors

    async def watch_abnormals(self) -> AsyncIterator[Abnormal]:
        """Stream ADDED/MODIFIED Abnormals, reconnecting with back-off."""
        delay = _BACKOFF_INITIAL_SECONDS
        resource_version = ""
        while True:
            watcher = k8s_watch.Watch()
            try:
                kwargs: dict[str, Any] = {}
                if resource_version:
                    kwargs["resource_version"] = resource_version
                async for event in watcher.stream(
                    self._api.list_cluster_custom_object,
                    API_GROUP,
                    API_VERSION,
                    _ABNORMAL_PLURAL,
                    **kwargs,
                ):
                    event_type = event.get("type")
                    raw = event.get("raw_object") or event.get("object") or {}
                    if event_type == "ERROR":
                        # Usually 410 Gone: our resource version expired; relist.
                        _log.info("abnormal_watch_expired", status=raw.get("code"))
                        resource_version = ""
                        break
                    resource_version = str(raw.get("metadata", {}).get("resourceVersion", resource_version))
                    if event_type not in ("ADDED", "MODIFIED"):
                        continue
                    try:
                        abnormal = self._decode_abnormal(raw)
                    except ResourceStoreError as exc:
                        _log.warning("abnormal_decode_failed", error=str(exc))
                        continue
                    yield abnormal
                delay = _BACKOFF_INITIAL_SECONDS
            except (ApiException, aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
                _log.warning("abnormal_watch_failed", error=str(exc), retry_in=delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, _BACKOFF_MAX_SECONDS)
            finally:
                watcher.stop()

    @staticmethod
    def _decode_abnormal(raw: dict[str, Any]) -> Abnormal:
        try:
            return Abnormal.from_dict(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ResourceStoreError(f"malformed Abnormal: {exc}") from exc
