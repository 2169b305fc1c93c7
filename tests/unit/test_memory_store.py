"""Tests for InMemoryResourceStore."""

from __future__ import annotations

import asyncio

import pytest

from kubediag.models.abnormal import Abnormal, AbnormalPhase, ObjectMeta, ProcessorType
from kubediag.models.processor import Processor, ProcessorEndpoint
from kubediag.store.base import ConflictError, NotFoundError
from kubediag.store.memory import InMemoryResourceStore


def _abnormal(name: str = "a") -> Abnormal:
    return Abnormal(metadata=ObjectMeta(name=name, namespace="default"))


def _processor(name: str, namespace: str = "kubediag") -> Processor:
    return Processor(
        type=ProcessorType.RECOVERER,
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=ProcessorEndpoint(ip="10.0.0.1", port=8080),
    )


class TestAbnormals:
    async def test_create_assigns_uid_and_version(self) -> None:
        store = InMemoryResourceStore()
        created = store.create_abnormal(_abnormal())
        assert created.metadata.uid
        assert created.metadata.resource_version == "1"

        with pytest.raises(ConflictError):
            store.create_abnormal(_abnormal())

    async def test_get_returns_independent_copy(self) -> None:
        store = InMemoryResourceStore()
        store.create_abnormal(_abnormal())
        fetched = await store.get_abnormal("default", "a")
        fetched.status.phase = AbnormalPhase.FAILED
        assert (await store.get_abnormal("default", "a")).status.phase is None

    async def test_get_missing_raises_not_found(self) -> None:
        store = InMemoryResourceStore()
        with pytest.raises(NotFoundError, match="default/missing"):
            await store.get_abnormal("default", "missing")

    async def test_update_bumps_version_and_rejects_stale_writes(self) -> None:
        store = InMemoryResourceStore()
        created = store.create_abnormal(_abnormal())
        created.status.phase = AbnormalPhase.DIAGNOSING

        updated = await store.update_abnormal_status(created)
        assert updated.metadata.resource_version != created.metadata.resource_version
        assert updated.status.phase == AbnormalPhase.DIAGNOSING

        created.status.phase = AbnormalPhase.FAILED
        with pytest.raises(ConflictError):
            await store.update_abnormal_status(created)

    async def test_update_deleted_raises_not_found(self) -> None:
        store = InMemoryResourceStore()
        created = store.create_abnormal(_abnormal())
        store.delete_abnormal("default", "a")
        with pytest.raises(NotFoundError):
            await store.update_abnormal_status(created)

    async def test_watch_sees_creates_and_updates(self) -> None:
        store = InMemoryResourceStore()
        stream = store.watch_abnormals()
        first = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        created = store.create_abnormal(_abnormal())
        assert (await asyncio.wait_for(first, timeout=1.0)).key == created.key

        created.status.phase = AbnormalPhase.INFORMATION_COLLECTING
        await store.update_abnormal_status(created)
        event = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
        assert event.status.phase == AbnormalPhase.INFORMATION_COLLECTING
        await stream.aclose()


class TestProcessors:
    async def test_list_is_ordered_by_namespace_then_name(self) -> None:
        store = InMemoryResourceStore()
        store.add_processor(_processor("b", "ns-1"))
        store.add_processor(_processor("a", "ns-2"))
        store.add_processor(_processor("a", "ns-1"))

        listed = await store.list_processors(ProcessorType.RECOVERER)
        assert [str(p.key) for p in listed] == ["ns-1/a", "ns-1/b", "ns-2/a"]
        assert await store.list_processors(ProcessorType.DIAGNOSER) == []

    async def test_remove_processor(self) -> None:
        store = InMemoryResourceStore()
        store.add_processor(_processor("a"))
        store.remove_processor(ProcessorType.RECOVERER, "kubediag", "a")
        assert await store.list_processors(ProcessorType.RECOVERER) == []
