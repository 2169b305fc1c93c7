"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import socket

from kubediag.models.config import (
    AgentConfig,
    APIConfig,
    EventConfig,
    KubeDiagConfig,
    LogConfig,
    ProcessorConfig,
    QueueConfig,
    StoreConfig,
)

_STORE_BACKENDS = ("kubernetes", "memory")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEDIAG_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_store_backend(value: str) -> str:
    if value.lower() not in _STORE_BACKENDS:
        raise ValueError(f"Invalid store backend: {value}. Must be one of {_STORE_BACKENDS}")
    return value.lower()


def load_config() -> KubeDiagConfig:
    """Load configuration from KUBEDIAG_* environment variables."""
    return KubeDiagConfig(
        agent=AgentConfig(
            # Downward API usually injects the node name; the host name is
            # what the kubelet registers by default.
            node_name=_env("NODE_NAME", "") or socket.gethostname(),
            data_root=_env("DATA_ROOT", "/var/lib/kubediag"),
        ),
        store=StoreConfig(
            backend=_validate_store_backend(_env("STORE_BACKEND", "kubernetes")),
        ),
        queue=QueueConfig(
            size=_env_int("QUEUE_SIZE", 1000, min_val=10, max_val=100_000),
            retry_delay_seconds=_env_float("RETRY_DELAY", 30.0, min_val=1.0, max_val=600.0),
        ),
        processor=ProcessorConfig(
            default_timeout_seconds=_env_int("PROCESSOR_DEFAULT_TIMEOUT", 30, min_val=1, max_val=600),
        ),
        events=EventConfig(
            enabled=_env_bool("EVENTS_ENABLED", True),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8090, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
