"""Shared fixtures for kubediag integration tests.

Provides an in-memory store, a recording event sink and a fake processor
fleet served through ``httpx.MockTransport`` so the stage engines can be
exercised end to end without a cluster or real HTTP servers.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from kubediag.chain.client import ProcessorClient
from kubediag.chain.engine import StageEngine
from kubediag.chain.stages import Stage
from kubediag.events import EventSink
from kubediag.executors import CommandExecutor, ProfilerRunner
from kubediag.models.abnormal import (
    Abnormal,
    AbnormalPhase,
    AbnormalSpec,
    AbnormalStatus,
    NamespacedName,
    ObjectMeta,
    ProcessorType,
    now,
)
from kubediag.models.processor import Processor, ProcessorEndpoint
from kubediag.store.memory import InMemoryResourceStore

NODE_NAME = "node-1"

# A handler receives the decoded request body and returns an httpx.Response.
Behaviour = Callable[[dict[str, Any]], httpx.Response]


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_abnormal(
    name: str = "abnormal-1",
    namespace: str = "default",
    phase: AbnormalPhase | None = AbnormalPhase.RECOVERING,
    **spec_fields: Any,
) -> Abnormal:
    """Create an Abnormal in *phase* targeting NODE_NAME unless overridden."""
    spec_fields.setdefault("node_name", NODE_NAME)
    status = AbnormalStatus(phase=phase, start_time=now() if phase is not None else None)
    return Abnormal(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=AbnormalSpec(**spec_fields),
        status=status,
    )


def make_processor(
    name: str,
    processor_type: ProcessorType = ProcessorType.RECOVERER,
    port: int = 8080,
    namespace: str = "kubediag",
    timeout_seconds: int = 5,
) -> Processor:
    """Create a processor whose endpoint is routed by port in FakeProcessors."""
    return Processor(
        type=processor_type,
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=ProcessorEndpoint(ip="10.0.0.1", port=port, path="/processor", timeout_seconds=timeout_seconds),
    )


def key(name: str, namespace: str = "kubediag") -> NamespacedName:
    return NamespacedName(namespace=namespace, name=name)


# ---------------------------------------------------------------------------
# Processor behaviours
# ---------------------------------------------------------------------------


def echo(body: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json=body)


def add_context(**values: Any) -> Behaviour:
    """Echo the Abnormal with *values* merged into ``status.context``."""

    def _handler(body: dict[str, Any]) -> httpx.Response:
        status = body.setdefault("status", {})
        context = dict(status.get("context") or {})
        context.update(values)
        status["context"] = context
        return httpx.Response(200, json=body)

    return _handler


def mutate_status(**values: Any) -> Behaviour:
    """Echo the Abnormal with raw ``status`` keys overwritten."""

    def _handler(body: dict[str, Any]) -> httpx.Response:
        body.setdefault("status", {}).update(values)
        return httpx.Response(200, json=body)

    return _handler


def fail(status_code: int = 500) -> Behaviour:
    def _handler(_body: dict[str, Any]) -> httpx.Response:
        return httpx.Response(status_code, text="processor exploded")

    return _handler


def unreachable(_body: dict[str, Any]) -> httpx.Response:
    raise httpx.ConnectError("connection refused")


@dataclass
class FakeProcessors:
    """Processor fleet keyed by port, recording every request it receives."""

    behaviours: dict[int, Behaviour] = field(default_factory=dict)
    calls: list[int] = field(default_factory=list)

    def serve(self, port: int, behaviour: Behaviour) -> None:
        self.behaviours[port] = behaviour

    def handle(self, request: httpx.Request) -> httpx.Response:
        port = request.url.port or 80
        self.calls.append(port)
        behaviour = self.behaviours.get(port, unreachable)
        return behaviour(json.loads(request.content))


# ---------------------------------------------------------------------------
# Event sink
# ---------------------------------------------------------------------------


@dataclass
class RecordedEvent:
    abnormal: NamespacedName
    event_type: str
    reason: str
    message: str


class RecordingEventSink(EventSink):
    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    async def record(self, abnormal: Abnormal, event_type: str, reason: str, message: str) -> None:
        self.events.append(RecordedEvent(abnormal.key, event_type, reason, message))

    @property
    def reasons(self) -> list[str]:
        return [e.reason for e in self.events]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def processors() -> FakeProcessors:
    return FakeProcessors()


@pytest.fixture
async def processor_client(processors: FakeProcessors):
    client = ProcessorClient(transport=httpx.MockTransport(processors.handle))
    yield client
    await client.close()


@pytest.fixture
async def profiler(tmp_path):
    runner = ProfilerRunner(tmp_path, transport=httpx.MockTransport(lambda _r: httpx.Response(404)))
    yield runner
    await runner.close()


@pytest.fixture
def make_engine(store, processor_client, sink, profiler) -> Callable[..., StageEngine]:
    def _make(stage: Stage, node_name: str = NODE_NAME, retry_delay: float = 30.0) -> StageEngine:
        return StageEngine(
            stage=stage,
            store=store,
            processor_client=processor_client,
            event_sink=sink,
            node_name=node_name,
            command_executor=CommandExecutor(default_timeout=5),
            profiler=profiler,
            retry_delay=retry_delay,
        )

    return _make


async def wait_for_phase(
    store: InMemoryResourceStore,
    abnormal_key: NamespacedName,
    phase: AbnormalPhase,
    timeout: float = 5.0,
) -> Abnormal:
    """Poll *store* until the Abnormal reaches *phase*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        abnormal = await store.get_abnormal(abnormal_key.namespace, abnormal_key.name)
        if abnormal.status.phase == phase:
            return abnormal
        if loop.time() > deadline:
            raise AssertionError(f"{abnormal_key} stuck in phase {abnormal.status.phase}, expected {phase}")
        await asyncio.sleep(0.01)
