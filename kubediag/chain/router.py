"""Fan-out from the Abnormal watch stream to the stage engines.

New Abnormals (no phase yet) are admitted to the pipeline by writing phase
``InformationCollecting`` and a start time.  The stored result is routed at
once; the watch event the write produces leads to a duplicate key, which
the engine discards after re-fetching.  Abnormals in a stage phase have
their key put on the owning engine's queue; terminal phases are ignored.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from kubediag.chain.engine import StageEngine
from kubediag.chain.filters import is_node_name_matched
from kubediag.models.abnormal import Abnormal, AbnormalPhase, now
from kubediag.store.base import ResourceStore, ResourceStoreError

_log = structlog.get_logger(component="chain.router")


class AbnormalRouter:
    """Routes Abnormals to the engine that owns their phase.

    Args:
        store:     Source of the watch stream and target of admission writes.
        engines:   One engine per stage phase.
        node_name: Only Abnormals targeting this node (or any node) are admitted.
    """

    def __init__(self, store: ResourceStore, engines: Iterable[StageEngine], node_name: str) -> None:
        self._store = store
        self._engines = {engine.stage.phase: engine for engine in engines}
        self._node_name = node_name
        self._task: asyncio.Task[None] | None = None

    async def route(self, abnormal: Abnormal) -> None:
        phase = abnormal.status.phase
        if phase is None:
            await self._admit(abnormal)
            return

        engine = self._engines.get(phase)
        if engine is None:
            _log.debug("abnormal_not_routed", abnormal=str(abnormal.key), phase=str(phase))
            return
        engine.enqueue(abnormal.key)

    async def _admit(self, abnormal: Abnormal) -> None:
        if not is_node_name_matched(abnormal, self._node_name):
            return
        abnormal.status.phase = AbnormalPhase.INFORMATION_COLLECTING
        abnormal.status.start_time = now()
        try:
            stored = await self._store.update_abnormal_status(abnormal)
        except ResourceStoreError as exc:
            _log.warning("abnormal_admission_failed", abnormal=str(abnormal.key), error=str(exc))
            return
        _log.info("abnormal_admitted", abnormal=str(abnormal.key))
        await self.route(stored)

    async def resync(self) -> int:
        """Route every existing Abnormal.  Returns how many were seen."""
        abnormals = await self._store.list_abnormals()
        for abnormal in abnormals:
            await self.route(abnormal)
        _log.info("abnormal_resync_completed", count=len(abnormals))
        return len(abnormals)

    async def run(self) -> None:
        """Resync, then route watch events until cancelled."""
        if not await self._store.wait_for_cache_sync():
            _log.error("cache_sync_failed")
            return
        try:
            await self.resync()
        except ResourceStoreError as exc:
            _log.warning("abnormal_resync_failed", error=str(exc))

        async for abnormal in self._store.watch_abnormals():
            await self.route(abnormal)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="abnormal-router")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
