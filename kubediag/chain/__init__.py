"""Stage-processing chain for Abnormals.

Submodules:
    context     -- Keyed access to the opaque context blob.
    conditions  -- Idempotent condition updates.
    filters     -- Node affinity and processor assignment checks.
    validation  -- Rejects processor responses that touch protected fields.
    client      -- HTTP dispatch to external processors.
    queue       -- Bounded key queue with delayed re-enqueue.
    stages      -- Per-stage configuration.
    engine      -- The generic StageEngine.
    router      -- Watch stream to engine queue fan-out.
"""

from kubediag.chain.client import ProcessorClient, ProcessorError
from kubediag.chain.context import ContextStore
from kubediag.chain.engine import StageEngine
from kubediag.chain.queue import AbnormalQueue, QueueFullError
from kubediag.chain.router import AbnormalRouter
from kubediag.chain.stages import DIAGNOSING, INFORMATION_COLLECTING, RECOVERING, STAGES, Stage

__all__ = [
    "DIAGNOSING",
    "INFORMATION_COLLECTING",
    "RECOVERING",
    "STAGES",
    "AbnormalQueue",
    "AbnormalRouter",
    "ContextStore",
    "ProcessorClient",
    "ProcessorError",
    "QueueFullError",
    "Stage",
    "StageEngine",
]
