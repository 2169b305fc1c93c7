"""External processor descriptors (InformationCollector, Diagnoser, Recoverer)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kubediag.models.abnormal import (
    API_GROUP,
    API_VERSION,
    NamespacedName,
    ObjectMeta,
    ProcessorType,
    get_object,
)

DEFAULT_TIMEOUT_SECONDS = 30
MIN_TIMEOUT_SECONDS = 1

# Custom resource plural for each processor kind.
PROCESSOR_PLURALS: dict[ProcessorType, str] = {
    ProcessorType.INFORMATION_COLLECTOR: "informationcollectors",
    ProcessorType.DIAGNOSER: "diagnosers",
    ProcessorType.RECOVERER: "recoverers",
}


@dataclass
class ProcessorEndpoint:
    """Where and how to reach a processor over HTTP."""

    ip: str
    port: int
    path: str = "/"
    scheme: str = "http"
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheme": self.scheme,
            "ip": self.ip,
            "port": self.port,
            "path": self.path,
            "timeoutSeconds": self.timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessorEndpoint:
        return cls(
            ip=str(data.get("ip", "")),
            port=int(data.get("port") or 0),
            path=str(data.get("path") or "/"),
            scheme=str(data.get("scheme") or "http"),
            timeout_seconds=int(data.get("timeoutSeconds") or 0),
        )


@dataclass
class Processor:
    """A processor registered in the cluster for one pipeline stage."""

    type: ProcessorType
    metadata: ObjectMeta
    spec: ProcessorEndpoint = field(default_factory=lambda: ProcessorEndpoint(ip="127.0.0.1", port=80))

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    @property
    def timeout(self) -> float:
        """Per-call timeout in seconds: declared value, default 30, minimum 1."""
        seconds = self.spec.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        return float(max(seconds, MIN_TIMEOUT_SECONDS))

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": self.type.value,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], processor_type: ProcessorType | None = None) -> Processor:
        return cls(
            type=processor_type or ProcessorType(data["kind"]),
            metadata=ObjectMeta.from_dict(get_object(data, "metadata")),
            spec=ProcessorEndpoint.from_dict(get_object(data, "spec")),
        )
