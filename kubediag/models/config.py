"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AgentConfig:
    """Identity of the node this agent runs on."""

    node_name: str = ""
    data_root: str = "/var/lib/kubediag"


@dataclass
class StoreConfig:
    """Resource store backend selection."""

    backend: str = "kubernetes"


@dataclass
class QueueConfig:
    """Per-stage work queue configuration."""

    size: int = 1000
    retry_delay_seconds: float = 30.0


@dataclass
class ProcessorConfig:
    """Defaults for embedded and external processors."""

    default_timeout_seconds: int = 30


@dataclass
class EventConfig:
    """Kubernetes event recording."""

    enabled: bool = True


@dataclass
class APIConfig:
    """Inspection API configuration."""

    port: int = 8090


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeDiagConfig:
    """Top-level kubediag agent configuration."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)
    events: EventConfig = field(default_factory=EventConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
