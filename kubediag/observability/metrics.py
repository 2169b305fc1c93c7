"""Prometheus counters for the stage engines.

Every counter is labelled with ``stage`` (``information_collecting``,
``diagnosing`` or ``recovering``) so the three engines share one family.
"""

from __future__ import annotations

from prometheus_client import Counter

stage_sync_success_total = Counter(
    "kubediag_stage_sync_success_total",
    "Abnormals successfully synced by a stage engine",
    ["stage"],
)
stage_sync_skip_total = Counter(
    "kubediag_stage_sync_skip_total",
    "Abnormals for which a stage engine skipped processor dispatch",
    ["stage"],
)
stage_sync_fail_total = Counter(
    "kubediag_stage_sync_fail_total",
    "Abnormals marked failed after all processors were exhausted",
    ["stage"],
)
stage_sync_error_total = Counter(
    "kubediag_stage_sync_error_total",
    "Abnormal syncs aborted by a store error and queued for retry",
    ["stage"],
)
command_executor_total = Counter(
    "kubediag_command_executor_total",
    "Embedded command executor runs",
    ["stage", "success"],
)
profiler_total = Counter(
    "kubediag_profiler_total",
    "Embedded profiler runs",
    ["stage", "success"],
)
processor_dispatch_total = Counter(
    "kubediag_processor_dispatch_total",
    "External processor dispatches by outcome",
    ["stage", "outcome"],
)
