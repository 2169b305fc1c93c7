"""Core data structures for kubediag."""

from kubediag.models.abnormal import (
    Abnormal,
    AbnormalCondition,
    AbnormalPhase,
    AbnormalSourceType,
    AbnormalSpec,
    AbnormalStatus,
    CommandExecutorSpec,
    CommandExecutorStatus,
    ConditionStatus,
    ConditionType,
    NamespacedName,
    ObjectMeta,
    PodReference,
    ProcessorType,
    ProfilerSpec,
    ProfilerStatus,
)
from kubediag.models.config import KubeDiagConfig
from kubediag.models.processor import Processor, ProcessorEndpoint

__all__ = [
    "Abnormal",
    "AbnormalCondition",
    "AbnormalPhase",
    "AbnormalSourceType",
    "AbnormalSpec",
    "AbnormalStatus",
    "CommandExecutorSpec",
    "CommandExecutorStatus",
    "ConditionStatus",
    "ConditionType",
    "KubeDiagConfig",
    "NamespacedName",
    "ObjectMeta",
    "PodReference",
    "Processor",
    "ProcessorEndpoint",
    "ProcessorType",
    "ProfilerSpec",
    "ProfilerStatus",
]
