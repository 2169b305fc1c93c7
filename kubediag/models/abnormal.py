"""Abnormal resource data structures and their Kubernetes JSON encoding.

The in-memory model mirrors the ``diagnosis.kubediag.io/v1`` Abnormal custom
resource.  ``to_dict`` / ``from_dict`` translate between dataclasses and the
camelCase wire form consumed by processors and the API server.

Context blobs (``spec.context`` and ``status.context``) are kept as raw JSON
bytes: ``None`` means no context, ``b""`` means an empty context.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

API_GROUP = "diagnosis.kubediag.io"
API_VERSION = "v1"


class AbnormalSourceType(StrEnum):
    """Origin of an Abnormal."""

    PROMETHEUS_ALERT = "PrometheusAlert"
    KUBERNETES_EVENT = "KubernetesEvent"
    CUSTOM = "Custom"


class AbnormalPhase(StrEnum):
    """Pipeline phase of an Abnormal."""

    INFORMATION_COLLECTING = "InformationCollecting"
    DIAGNOSING = "Diagnosing"
    RECOVERING = "Recovering"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class ProcessorType(StrEnum):
    """Processor kind tag shared by external processors and embedded specs."""

    INFORMATION_COLLECTOR = "InformationCollector"
    DIAGNOSER = "Diagnoser"
    RECOVERER = "Recoverer"


class ConditionType(StrEnum):
    """Milestones recorded in ``status.conditions``."""

    INFORMATION_COLLECTED = "InformationCollected"
    IDENTIFIED = "Identified"
    RECOVERED = "Recovered"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class JavaProfilerType(StrEnum):
    ARTHAS = "Arthas"
    MEMORY_ANALYZER = "MemoryAnalyzer"


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def now() -> datetime:
    """Current UTC time truncated to the second precision used on the wire."""
    return datetime.now(tz=UTC).replace(microsecond=0)


def format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def encode_raw(value: Any) -> bytes | None:
    """Serialise a decoded JSON value into the canonical raw form."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode()


def decode_raw(raw: bytes | None) -> Any:
    """Decode raw JSON bytes for embedding in a wire document.

    Raises:
        ValueError: if *raw* is not valid JSON.
    """
    if not raw:
        return None
    return json.loads(raw)


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is empty, mirroring ``omitempty``."""
    return {k: v for k, v in data.items() if v not in (None, "", [], {})}


def get_object(data: dict[str, Any], key: str) -> dict[str, Any]:
    """Return the JSON object under *key*, ``{}`` when absent or null.

    Raises:
        TypeError: if the value is present but not an object.
    """
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{key} must be an object, got {type(value).__name__}")
    return value


def get_object_list(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    """Return the list of JSON objects under *key*, ``[]`` when absent or null.

    Raises:
        TypeError: if the value is not a list of objects.
    """
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise TypeError(f"{key} must be a list of objects")
    return value


# ---------------------------------------------------------------------------
# Shared types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamespacedName:
    """Identity of a namespaced cluster object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    def to_dict(self) -> dict[str, str]:
        return {"namespace": self.namespace, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NamespacedName:
        return cls(namespace=str(data.get("namespace", "")), name=str(data.get("name", "")))


@dataclass
class ObjectMeta:
    """Subset of Kubernetes object metadata carried through the pipeline."""

    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    creation_timestamp: str = ""

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(namespace=self.namespace, name=self.name)

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "namespace": self.namespace,
                "uid": self.uid,
                "resourceVersion": self.resource_version,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
                "creationTimestamp": self.creation_timestamp,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectMeta:
        return cls(
            name=str(data.get("name", "")),
            namespace=str(data.get("namespace", "")),
            uid=str(data.get("uid", "")),
            resource_version=str(data.get("resourceVersion", "")),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            creation_timestamp=str(data.get("creationTimestamp") or ""),
        )


# ---------------------------------------------------------------------------
# Spec
# ---------------------------------------------------------------------------


@dataclass
class PrometheusAlert:
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    generator_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            {
                "startsAt": format_time(self.starts_at),
                "endsAt": format_time(self.ends_at),
            }
        )
        data["labels"] = dict(self.labels)
        data["annotations"] = dict(self.annotations)
        data["generatorURL"] = self.generator_url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrometheusAlert:
        return cls(
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            starts_at=parse_time(data.get("startsAt")),
            ends_at=parse_time(data.get("endsAt")),
            generator_url=str(data.get("generatorURL", "")),
        )


@dataclass
class PodReference:
    namespace: str
    name: str
    container_name: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"namespace": self.namespace, "name": self.name}
        if self.container_name:
            data["containerName"] = self.container_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PodReference:
        return cls(
            namespace=str(data.get("namespace", "")),
            name=str(data.get("name", "")),
            container_name=str(data.get("containerName", "")),
        )


@dataclass
class CommandExecutorSpec:
    """A command run locally by the agent during one stage."""

    command: list[str]
    type: ProcessorType
    timeout_seconds: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"command": list(self.command), "type": self.type.value}
        if self.timeout_seconds:
            data["timeoutSeconds"] = self.timeout_seconds
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandExecutorSpec:
        return cls(
            command=[str(c) for c in data.get("command") or []],
            type=ProcessorType(data["type"]),
            timeout_seconds=int(data.get("timeoutSeconds") or 0),
        )


@dataclass
class GoProfilerSpec:
    source: str

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source}


@dataclass
class JavaProfilerSpec:
    type: JavaProfilerType
    hprof_file_path: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"type": self.type.value}
        if self.hprof_file_path:
            data["hprofFilePath"] = self.hprof_file_path
        return data


@dataclass
class ProfilerSpec:
    name: str
    type: ProcessorType
    go: GoProfilerSpec | None = None
    java: JavaProfilerSpec | None = None
    timeout_seconds: int = 0
    expiration_seconds: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "type": self.type.value,
                "go": self.go.to_dict() if self.go else None,
                "java": self.java.to_dict() if self.java else None,
                "timeoutSeconds": self.timeout_seconds or None,
                "expirationSeconds": self.expiration_seconds or None,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfilerSpec:
        go = get_object(data, "go")
        java = get_object(data, "java")
        return cls(
            name=str(data.get("name", "")),
            type=ProcessorType(data["type"]),
            go=GoProfilerSpec(source=str(go.get("source", ""))) if go else None,
            java=(
                JavaProfilerSpec(
                    type=JavaProfilerType(java["type"]),
                    hprof_file_path=str(java.get("hprofFilePath", "")),
                )
                if java
                else None
            ),
            timeout_seconds=int(data.get("timeoutSeconds") or 0),
            expiration_seconds=int(data.get("expirationSeconds") or 0),
        )


@dataclass
class AbnormalSpec:
    """Immutable intent of an Abnormal."""

    source: AbnormalSourceType = AbnormalSourceType.CUSTOM
    prometheus_alert: PrometheusAlert | None = None
    kubernetes_event: dict[str, Any] | None = None
    node_name: str = ""
    pod_reference: PodReference | None = None
    assigned_information_collectors: list[NamespacedName] = field(default_factory=list)
    assigned_diagnosers: list[NamespacedName] = field(default_factory=list)
    assigned_recoverers: list[NamespacedName] = field(default_factory=list)
    command_executors: list[CommandExecutorSpec] = field(default_factory=list)
    profilers: list[ProfilerSpec] = field(default_factory=list)
    context: bytes | None = None
    skip_recovery: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            {
                "prometheusAlert": self.prometheus_alert.to_dict() if self.prometheus_alert else None,
                "kubernetesEvent": self.kubernetes_event,
                "nodeName": self.node_name,
                "podReference": self.pod_reference.to_dict() if self.pod_reference else None,
                "assignedInformationCollectors": [n.to_dict() for n in self.assigned_information_collectors],
                "assignedDiagnosers": [n.to_dict() for n in self.assigned_diagnosers],
                "assignedRecoverers": [n.to_dict() for n in self.assigned_recoverers],
                "commandExecutors": [c.to_dict() for c in self.command_executors],
                "profilers": [p.to_dict() for p in self.profilers],
                "context": decode_raw(self.context),
            }
        )
        data["source"] = self.source.value
        if self.skip_recovery:
            data["skipRecovery"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AbnormalSpec:
        alert = get_object(data, "prometheusAlert")
        pod_ref = get_object(data, "podReference")
        return cls(
            source=AbnormalSourceType(data.get("source") or AbnormalSourceType.CUSTOM),
            prometheus_alert=PrometheusAlert.from_dict(alert) if alert else None,
            kubernetes_event=data.get("kubernetesEvent"),
            node_name=str(data.get("nodeName", "")),
            pod_reference=PodReference.from_dict(pod_ref) if pod_ref else None,
            assigned_information_collectors=[
                NamespacedName.from_dict(n) for n in get_object_list(data, "assignedInformationCollectors")
            ],
            assigned_diagnosers=[NamespacedName.from_dict(n) for n in get_object_list(data, "assignedDiagnosers")],
            assigned_recoverers=[NamespacedName.from_dict(n) for n in get_object_list(data, "assignedRecoverers")],
            command_executors=[CommandExecutorSpec.from_dict(c) for c in get_object_list(data, "commandExecutors")],
            profilers=[ProfilerSpec.from_dict(p) for p in get_object_list(data, "profilers")],
            context=encode_raw(data.get("context")),
            skip_recovery=bool(data.get("skipRecovery", False)),
        )


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@dataclass
class AbnormalCondition:
    type: ConditionType
    status: ConditionStatus
    last_transition_time: datetime | None = None
    reason: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            {
                "lastTransitionTime": format_time(self.last_transition_time),
                "reason": self.reason,
                "message": self.message,
            }
        )
        return {"type": self.type.value, "status": self.status.value, **data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AbnormalCondition:
        return cls(
            type=ConditionType(data["type"]),
            status=ConditionStatus(data["status"]),
            last_transition_time=parse_time(data.get("lastTransitionTime")),
            reason=str(data.get("reason", "")),
            message=str(data.get("message", "")),
        )


@dataclass
class CommandExecutorStatus:
    command: list[str]
    type: ProcessorType
    stdout: str = ""
    stderr: str = ""
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = _compact({"stdout": self.stdout, "stderr": self.stderr, "error": self.error})
        return {"command": list(self.command), "type": self.type.value, **data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandExecutorStatus:
        return cls(
            command=[str(c) for c in data.get("command") or []],
            type=ProcessorType(data["type"]),
            stdout=str(data.get("stdout", "")),
            stderr=str(data.get("stderr", "")),
            error=str(data.get("error", "")),
        )


@dataclass
class GoProfilerStatus:
    endpoint: str


@dataclass
class JavaProfilerStatus:
    type: JavaProfilerType
    endpoint: str = ""


@dataclass
class ProfilerStatus:
    name: str
    type: ProcessorType
    go: GoProfilerStatus | None = None
    java: JavaProfilerStatus | None = None
    expired: bool = False
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        java: dict[str, Any] | None = None
        if self.java is not None:
            java = {"type": self.java.type.value}
            if self.java.endpoint:
                # The endpoint lives under the per-tool key on the wire.
                tool = "arthas" if self.java.type is JavaProfilerType.ARTHAS else "memoryAnalyzer"
                java[tool] = {"endpoint": self.java.endpoint}
        data = _compact(
            {
                "go": {"endpoint": self.go.endpoint} if self.go else None,
                "java": java,
                "expired": self.expired or None,
                "error": self.error,
            }
        )
        return {"name": self.name, "type": self.type.value, **data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfilerStatus:
        go = get_object(data, "go")
        java = get_object(data, "java")
        java_status = None
        if java:
            java_type = JavaProfilerType(java["type"])
            tool = get_object(java, "arthas") or get_object(java, "memoryAnalyzer")
            java_status = JavaProfilerStatus(type=java_type, endpoint=str(tool.get("endpoint", "")))
        return cls(
            name=str(data.get("name", "")),
            type=ProcessorType(data["type"]),
            go=GoProfilerStatus(endpoint=str(go.get("endpoint", ""))) if go else None,
            java=java_status,
            expired=bool(data.get("expired", False)),
            error=str(data.get("error", "")),
        )


def _parse_phase(value: str | None) -> AbnormalPhase | None:
    if not value:
        return None
    try:
        return AbnormalPhase(value)
    except ValueError:
        return AbnormalPhase.UNKNOWN


@dataclass
class AbnormalStatus:
    """Mutable progress of an Abnormal.

    ``diagnoser`` and ``recoverer`` are written by the stage engine only.
    ``phase`` is None until the Abnormal has been admitted to the pipeline.
    """

    identifiable: bool = False
    recoverable: bool = False
    phase: AbnormalPhase | None = None
    conditions: list[AbnormalCondition] = field(default_factory=list)
    message: str = ""
    reason: str = ""
    start_time: datetime | None = None
    diagnoser: NamespacedName | None = None
    recoverer: NamespacedName | None = None
    command_executors: list[CommandExecutorStatus] = field(default_factory=list)
    profilers: list[ProfilerStatus] = field(default_factory=list)
    context: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            {
                "phase": self.phase.value if self.phase else None,
                "conditions": [c.to_dict() for c in self.conditions],
                "message": self.message,
                "reason": self.reason,
                "startTime": format_time(self.start_time),
                "diagnoser": self.diagnoser.to_dict() if self.diagnoser else None,
                "recoverer": self.recoverer.to_dict() if self.recoverer else None,
                "commandExecutors": [c.to_dict() for c in self.command_executors],
                "profilers": [p.to_dict() for p in self.profilers],
                "context": decode_raw(self.context),
            }
        )
        return {"identifiable": self.identifiable, "recoverable": self.recoverable, **data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AbnormalStatus:
        diagnoser = get_object(data, "diagnoser")
        recoverer = get_object(data, "recoverer")
        return cls(
            identifiable=bool(data.get("identifiable", False)),
            recoverable=bool(data.get("recoverable", False)),
            phase=_parse_phase(data.get("phase")),
            conditions=[AbnormalCondition.from_dict(c) for c in get_object_list(data, "conditions")],
            message=str(data.get("message", "")),
            reason=str(data.get("reason", "")),
            start_time=parse_time(data.get("startTime")),
            diagnoser=NamespacedName.from_dict(diagnoser) if diagnoser else None,
            recoverer=NamespacedName.from_dict(recoverer) if recoverer else None,
            command_executors=[CommandExecutorStatus.from_dict(c) for c in get_object_list(data, "commandExecutors")],
            profilers=[ProfilerStatus.from_dict(p) for p in get_object_list(data, "profilers")],
            context=encode_raw(data.get("context")),
        )


@dataclass
class Abnormal:
    """The diagnosable unit of work."""

    metadata: ObjectMeta
    spec: AbnormalSpec = field(default_factory=AbnormalSpec)
    status: AbnormalStatus = field(default_factory=AbnormalStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": "Abnormal",
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Abnormal:
        """Decode a wire document.

        Raises:
            ValueError, KeyError, TypeError: if the document is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Abnormal document must be an object, got {type(data).__name__}")
        return cls(
            metadata=ObjectMeta.from_dict(get_object(data, "metadata")),
            spec=AbnormalSpec.from_dict(get_object(data, "spec")),
            status=AbnormalStatus.from_dict(get_object(data, "status")),
        )
