"""Stage engine: drives Abnormals in one phase to the next.

Each engine owns a queue of Abnormal keys.  A single consumer task takes one
key at a time, re-fetches the live object and, if the Abnormal is in the
engine's phase and targets this node, runs:

    embedded command executors / profilers for the stage
      → external processors in catalog order until one succeeds
      → phase transition + condition + event

Store failures are transient: the key is re-enqueued after ``retry_delay``.
Processor failures are not: they only move the walk on to the next
candidate, and an exhausted walk marks the Abnormal failed.
"""

from __future__ import annotations

import asyncio
import copy

import structlog

from kubediag.chain.client import ProcessorClient, ProcessorError
from kubediag.chain.conditions import update_condition
from kubediag.chain.filters import is_node_name_matched, is_processor_assigned
from kubediag.chain.queue import DEFAULT_RETRY_DELAY_SECONDS, AbnormalQueue, QueueFullError
from kubediag.chain.stages import Stage
from kubediag.chain.validation import ResultValidationError, validate_result
from kubediag.events import EVENT_TYPE_NORMAL, EVENT_TYPE_WARNING, EventSink
from kubediag.executors import CommandExecutor, ProfilerRunner
from kubediag.models.abnormal import (
    Abnormal,
    AbnormalCondition,
    ConditionStatus,
    NamespacedName,
)
from kubediag.models.processor import Processor
from kubediag.observability.metrics import (
    command_executor_total,
    processor_dispatch_total,
    profiler_total,
    stage_sync_error_total,
    stage_sync_fail_total,
    stage_sync_skip_total,
    stage_sync_success_total,
)
from kubediag.store.base import NotFoundError, ResourceStore, ResourceStoreError

_log = structlog.get_logger(component="chain.engine")


class StageEngine:
    """Consumes Abnormal keys for one pipeline stage.

    Args:
        stage:            Which phase, processor type and status fields this
                          engine owns.
        store:            Source of truth for Abnormals and processors.
        processor_client: Shared HTTP client for external processors.
        event_sink:       Receives one event per terminal outcome.
        node_name:        Abnormals targeting another node are ignored.
        command_executor: Runs embedded command executors.
        profiler:         Runs embedded profilers.
        queue:            Work queue; a private one is created when omitted.
        retry_delay:      Seconds before a store-failed key is retried.
    """

    def __init__(
        self,
        stage: Stage,
        store: ResourceStore,
        processor_client: ProcessorClient,
        event_sink: EventSink,
        node_name: str,
        command_executor: CommandExecutor,
        profiler: ProfilerRunner,
        queue: AbnormalQueue | None = None,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        self._stage = stage
        self._store = store
        self._client = processor_client
        self._events = event_sink
        self._node_name = node_name
        self._command_executor = command_executor
        self._profiler = profiler
        self._queue = queue if queue is not None else AbnormalQueue(stage.name)
        self._retry_delay = retry_delay
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def queue(self) -> AbnormalQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Queue intake
    # ------------------------------------------------------------------

    def enqueue(self, key: NamespacedName) -> None:
        """Add *key* to the work queue.  A full queue drops the key with an error log."""
        try:
            self._queue.put(key)
        except QueueFullError as exc:
            _log.error("abnormal_enqueue_failed", stage=self._stage.name, abnormal=str(key), error=str(exc))

    def _requeue_after(self, key: NamespacedName) -> None:
        stage_sync_error_total.labels(stage=self._stage.name).inc()
        try:
            self._queue.put_after(key, self._retry_delay)
        except QueueFullError as exc:
            _log.error("abnormal_requeue_failed", stage=self._stage.name, abnormal=str(key), error=str(exc))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the consumer task.  Returns immediately."""
        if self._task is not None:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name=f"stage-{self._stage.name}")

    async def stop(self) -> None:
        """Stop consuming.  An in-flight Abnormal is allowed to finish."""
        self._stopping.set()
        if self._task is not None:
            await asyncio.shield(self._task)
            self._task = None
        self._queue.close()

    async def _run(self) -> None:
        log = _log.bind(stage=self._stage.name)
        if not await self._store.wait_for_cache_sync():
            log.error("cache_sync_failed")
            return
        log.info("stage_engine_started")

        while not self._stopping.is_set():
            get_task = asyncio.ensure_future(self._queue.get())
            stop_task = asyncio.ensure_future(self._stopping.wait())
            done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            stop_task.cancel()
            if get_task not in done:
                get_task.cancel()
                break

            key = get_task.result()
            try:
                await self.process(key)
            except Exception:
                log.exception("abnormal_sync_crashed", abnormal=str(key))
                self._requeue_after(key)

        log.info("stage_engine_stopped")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, key: NamespacedName) -> None:
        """Fetch the Abnormal behind *key* and sync it if it belongs to this engine."""
        log = _log.bind(stage=self._stage.name, abnormal=str(key))
        try:
            abnormal = await self._store.get_abnormal(key.namespace, key.name)
        except NotFoundError:
            log.debug("abnormal_gone")
            return
        except ResourceStoreError as exc:
            log.warning("abnormal_fetch_failed", error=str(exc))
            self._requeue_after(key)
            return

        if abnormal.status.phase != self._stage.phase:
            log.debug("abnormal_phase_mismatch", phase=abnormal.status.phase)
            return
        if not is_node_name_matched(abnormal, self._node_name):
            log.debug("abnormal_node_mismatch", target=abnormal.spec.node_name, node=self._node_name)
            return

        try:
            await self.sync_abnormal(abnormal)
        except ResourceStoreError as exc:
            log.warning("abnormal_sync_failed", error=str(exc))
            self._requeue_after(key)

    async def sync_abnormal(self, abnormal: Abnormal) -> Abnormal:
        """Run the stage for *abnormal* and persist the outcome.

        Returns the stored Abnormal.

        Raises:
            ResourceStoreError: listing processors or writing status failed.
                Nothing has been persisted in that case.
        """
        stage = self._stage
        log = _log.bind(stage=stage.name, abnormal=str(abnormal.key))
        log.info("abnormal_sync_started")

        processors = await self.list_processors()
        abnormal = copy.deepcopy(abnormal)

        await self._run_command_executors(abnormal)
        await self._run_profilers(abnormal)

        if stage.should_skip(abnormal.spec):
            log.info("processor_dispatch_skipped", skip_recovery=abnormal.spec.skip_recovery)
            stored = await self._set_succeeded(abnormal, None, stage.skip_reason, stage.skip_message)
            stage_sync_skip_total.labels(stage=stage.name).inc()
            await self._events.record(stored, EVENT_TYPE_NORMAL, stage.skip_reason, stage.skip_message)
            return stored

        assigned = stage.assigned(abnormal.spec)
        for processor in processors:
            if not is_processor_assigned(processor.key, assigned):
                continue

            try:
                result = await self._client.dispatch(processor, abnormal)
            except ProcessorError as exc:
                log.warning("processor_dispatch_failed", processor=str(processor.key), error=exc.detail)
                processor_dispatch_total.labels(stage=stage.name, outcome="error").inc()
                continue

            try:
                validate_result(result, abnormal)
            except ResultValidationError as exc:
                log.warning("processor_result_invalid", processor=str(processor.key), error=str(exc))
                processor_dispatch_total.labels(stage=stage.name, outcome="invalid").inc()
                continue

            processor_dispatch_total.labels(stage=stage.name, outcome="success").inc()
            result.metadata = abnormal.metadata
            message = stage.success_message.format(processor=processor.key)
            stored = await self._set_succeeded(result, processor, stage.success_reason, message)
            stage_sync_success_total.labels(stage=stage.name).inc()
            log.info("abnormal_sync_succeeded", processor=str(processor.key), phase=str(stored.status.phase))
            await self._events.record(stored, EVENT_TYPE_NORMAL, stage.success_reason, message)
            return stored

        message = stage.failure_message.format(name=abnormal.metadata.name, uid=abnormal.metadata.uid)
        stored = await self._set_failed(abnormal, message)
        stage_sync_fail_total.labels(stage=stage.name).inc()
        log.warning("abnormal_sync_exhausted", candidates=len(processors))
        await self._events.record(stored, EVENT_TYPE_WARNING, stage.failure_reason, message)
        return stored

    async def list_processors(self) -> list[Processor]:
        """Return this stage's processor catalog in dispatch order."""
        return await self._store.list_processors(self._stage.processor_type)

    # ------------------------------------------------------------------
    # Embedded steps
    # ------------------------------------------------------------------

    async def _run_command_executors(self, abnormal: Abnormal) -> None:
        for spec in abnormal.spec.command_executors:
            if spec.type != self._stage.processor_type:
                continue
            status = await self._command_executor.run(spec)
            success = not status.error
            command_executor_total.labels(stage=self._stage.name, success=str(success).lower()).inc()
            if not success:
                _log.warning(
                    "command_executor_failed",
                    stage=self._stage.name,
                    abnormal=str(abnormal.key),
                    command=spec.command,
                    error=status.error,
                )
            abnormal.status.command_executors.append(status)

    async def _run_profilers(self, abnormal: Abnormal) -> None:
        for spec in abnormal.spec.profilers:
            if spec.type != self._stage.processor_type:
                continue
            status = await self._profiler.run(abnormal, spec)
            success = not status.error
            profiler_total.labels(stage=self._stage.name, success=str(success).lower()).inc()
            if not success:
                _log.warning(
                    "profiler_failed",
                    stage=self._stage.name,
                    abnormal=str(abnormal.key),
                    profiler=spec.name,
                    error=status.error,
                )
            abnormal.status.profilers.append(status)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _set_succeeded(
        self,
        abnormal: Abnormal,
        processor: Processor | None,
        reason: str,
        message: str,
    ) -> Abnormal:
        stage = self._stage
        status = abnormal.status
        status.phase = stage.success_phase
        if stage.flag_field is not None:
            setattr(status, stage.flag_field, True)
        if stage.identity_field is not None and processor is not None:
            setattr(status, stage.identity_field, processor.key)
        update_condition(
            status,
            AbnormalCondition(
                type=stage.condition_type,
                status=ConditionStatus.TRUE,
                reason=reason,
                message=message,
            ),
        )
        return await self._store.update_abnormal_status(abnormal)

    async def _set_failed(self, abnormal: Abnormal, message: str) -> Abnormal:
        stage = self._stage
        status = abnormal.status
        status.phase = stage.failure_phase
        if stage.flag_field is not None:
            setattr(status, stage.flag_field, False)
        update_condition(
            status,
            AbnormalCondition(
                type=stage.condition_type,
                status=ConditionStatus.FALSE,
                reason=stage.failure_reason,
                message=message,
            ),
        )
        return await self._store.update_abnormal_status(abnormal)
