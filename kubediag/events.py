"""User-visible audit trail of stage outcomes.

EventSink            -- ABC every sink must implement.  ``record`` never raises.
LoggingEventSink     -- Writes events to the structured log only.
KubernetesEventSink  -- Creates core/v1 Events referencing the Abnormal, and
                        logs them as well.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

import aiohttp
import structlog
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubediag.models.abnormal import API_GROUP, API_VERSION, Abnormal, format_time, now

_log = structlog.get_logger(component="events")

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

_COMPONENT = "kubediag-agent"


class EventSink(ABC):
    """Destination for stage outcome events."""

    @abstractmethod
    async def record(self, abnormal: Abnormal, event_type: str, reason: str, message: str) -> None:
        """Record an event about *abnormal*.  Failures are logged, not raised."""


class LoggingEventSink(EventSink):
    async def record(self, abnormal: Abnormal, event_type: str, reason: str, message: str) -> None:
        log = _log.warning if event_type == EVENT_TYPE_WARNING else _log.info
        log("abnormal_event", abnormal=str(abnormal.key), event_type=event_type, reason=reason, message=message)


class KubernetesEventSink(EventSink):
    """Creates a core/v1 Event for every outcome.

    Args:
        core_api: ``kubernetes_asyncio.client.CoreV1Api`` instance.
        node_name: Reported as the event source host.
    """

    def __init__(self, core_api: Any, node_name: str) -> None:
        self._core_api = core_api
        self._node_name = node_name

    async def record(self, abnormal: Abnormal, event_type: str, reason: str, message: str) -> None:
        await LoggingEventSink().record(abnormal, event_type, reason, message)

        body = self._build_event(abnormal, event_type, reason, message)
        try:
            await self._core_api.create_namespaced_event(abnormal.metadata.namespace, body)
        except (ApiException, aiohttp.ClientError, OSError) as exc:
            _log.warning(
                "event_record_failed",
                abnormal=str(abnormal.key),
                reason=reason,
                error=str(exc),
            )

    def _build_event(self, abnormal: Abnormal, event_type: str, reason: str, message: str) -> dict[str, Any]:
        timestamp = format_time(now())
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{abnormal.metadata.name}.{uuid4().hex[:16]}",
                "namespace": abnormal.metadata.namespace,
            },
            "involvedObject": {
                "apiVersion": f"{API_GROUP}/{API_VERSION}",
                "kind": "Abnormal",
                "name": abnormal.metadata.name,
                "namespace": abnormal.metadata.namespace,
                "uid": abnormal.metadata.uid,
                "resourceVersion": abnormal.metadata.resource_version,
            },
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": _COMPONENT, "host": self._node_name},
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }
