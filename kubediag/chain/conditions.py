"""Condition bookkeeping for ``AbnormalStatus.conditions``."""

from __future__ import annotations

from kubediag.models.abnormal import AbnormalCondition, AbnormalStatus, ConditionType, now


def get_condition(status: AbnormalStatus | None, condition_type: ConditionType) -> AbnormalCondition | None:
    """Return the condition of *condition_type*, or None."""
    if status is None:
        return None
    for condition in status.conditions:
        if condition.type == condition_type:
            return condition
    return None


def update_condition(status: AbnormalStatus, condition: AbnormalCondition) -> bool:
    """Apply *condition* to *status*; return True if anything changed.

    An existing entry with the same status is left untouched, so repeated
    updates keep the original ``last_transition_time``.  A status change
    replaces status, reason and message in place and stamps the transition
    time.  A new type is appended.
    """
    existing = get_condition(status, condition.type)
    if existing is None:
        status.conditions.append(
            AbnormalCondition(
                type=condition.type,
                status=condition.status,
                last_transition_time=now(),
                reason=condition.reason,
                message=condition.message,
            )
        )
        return True

    if existing.status == condition.status:
        return False

    existing.status = condition.status
    existing.reason = condition.reason
    existing.message = condition.message
    existing.last_transition_time = now()
    return True
