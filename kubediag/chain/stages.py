"""Per-stage configuration for the generic StageEngine.

The three pipeline stages run the same algorithm and differ only in which
phase they own, which processors they dispatch to and which status fields
they write when they finish.
"""

from __future__ import annotations

from dataclasses import dataclass

from kubediag.models.abnormal import (
    AbnormalPhase,
    AbnormalSpec,
    ConditionType,
    NamespacedName,
    ProcessorType,
)


@dataclass(frozen=True)
class Stage:
    """Static description of one pipeline stage.

    ``flag_field`` and ``identity_field`` name ``AbnormalStatus`` attributes;
    None means the stage does not own such a field.
    """

    name: str
    phase: AbnormalPhase
    processor_type: ProcessorType
    condition_type: ConditionType
    success_phase: AbnormalPhase
    failure_phase: AbnormalPhase
    assigned_field: str
    flag_field: str | None
    identity_field: str | None
    # Terminal stage: an empty assignment list (or skipRecovery) means
    # nothing to do rather than "try everything".
    skip_when_unassigned: bool
    success_reason: str
    failure_reason: str
    skip_reason: str
    # Event messages; {processor}, {name} and {uid} are substituted.
    success_message: str
    failure_message: str
    skip_message: str

    def assigned(self, spec: AbnormalSpec) -> list[NamespacedName]:
        return list(getattr(spec, self.assigned_field))

    def should_skip(self, spec: AbnormalSpec) -> bool:
        if not self.skip_when_unassigned:
            return False
        return spec.skip_recovery or not self.assigned(spec)


INFORMATION_COLLECTING = Stage(
    name="information_collecting",
    phase=AbnormalPhase.INFORMATION_COLLECTING,
    processor_type=ProcessorType.INFORMATION_COLLECTOR,
    condition_type=ConditionType.INFORMATION_COLLECTED,
    success_phase=AbnormalPhase.DIAGNOSING,
    failure_phase=AbnormalPhase.FAILED,
    assigned_field="assigned_information_collectors",
    flag_field=None,
    identity_field=None,
    skip_when_unassigned=False,
    success_reason="InformationCollected",
    failure_reason="FailedCollectInformation",
    skip_reason="SkippingInformationCollection",
    success_message="Information collected by {processor}",
    failure_message="Unable to collect information for abnormal {name}({uid})",
    skip_message="Skipping information collection",
)

DIAGNOSING = Stage(
    name="diagnosing",
    phase=AbnormalPhase.DIAGNOSING,
    processor_type=ProcessorType.DIAGNOSER,
    condition_type=ConditionType.IDENTIFIED,
    success_phase=AbnormalPhase.RECOVERING,
    failure_phase=AbnormalPhase.FAILED,
    assigned_field="assigned_diagnosers",
    flag_field="identifiable",
    identity_field="diagnoser",
    skip_when_unassigned=False,
    success_reason="Identified",
    failure_reason="FailedIdentify",
    skip_reason="SkippingDiagnosis",
    success_message="Abnormal identified by {processor}",
    failure_message="Unable to identify abnormal {name}({uid})",
    skip_message="Skipping diagnosis",
)

RECOVERING = Stage(
    name="recovering",
    phase=AbnormalPhase.RECOVERING,
    processor_type=ProcessorType.RECOVERER,
    condition_type=ConditionType.RECOVERED,
    success_phase=AbnormalPhase.SUCCEEDED,
    failure_phase=AbnormalPhase.FAILED,
    assigned_field="assigned_recoverers",
    flag_field="recoverable",
    identity_field="recoverer",
    skip_when_unassigned=True,
    success_reason="Recovered",
    failure_reason="FailedRecover",
    skip_reason="SkippingRecovery",
    success_message="Abnormal recovered by {processor}",
    failure_message="Unable to recover abnormal {name}({uid})",
    skip_message="Skipping recovery",
)

STAGES: tuple[Stage, ...] = (INFORMATION_COLLECTING, DIAGNOSING, RECOVERING)
