"""Tests for condition bookkeeping."""

from __future__ import annotations

from datetime import UTC, datetime

from kubediag.chain.conditions import get_condition, update_condition
from kubediag.models.abnormal import AbnormalCondition, AbnormalStatus, ConditionStatus, ConditionType

_EARLIER = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)


def _condition(status: ConditionStatus, reason: str = "", message: str = "") -> AbnormalCondition:
    return AbnormalCondition(type=ConditionType.RECOVERED, status=status, reason=reason, message=message)


class TestGetCondition:
    def test_none_status_has_no_conditions(self) -> None:
        assert get_condition(None, ConditionType.RECOVERED) is None

    def test_returns_matching_type(self) -> None:
        status = AbnormalStatus(
            conditions=[
                AbnormalCondition(type=ConditionType.IDENTIFIED, status=ConditionStatus.TRUE),
                AbnormalCondition(type=ConditionType.RECOVERED, status=ConditionStatus.FALSE),
            ]
        )
        found = get_condition(status, ConditionType.RECOVERED)
        assert found is not None
        assert found.status == ConditionStatus.FALSE

    def test_missing_type_returns_none(self) -> None:
        assert get_condition(AbnormalStatus(), ConditionType.IDENTIFIED) is None


class TestUpdateCondition:
    def test_new_type_is_appended_with_transition_time(self) -> None:
        status = AbnormalStatus()
        assert update_condition(status, _condition(ConditionStatus.TRUE, "Recovered")) is True
        assert len(status.conditions) == 1
        assert status.conditions[0].reason == "Recovered"
        assert status.conditions[0].last_transition_time is not None

    def test_same_status_is_a_no_op(self) -> None:
        status = AbnormalStatus(
            conditions=[
                AbnormalCondition(
                    type=ConditionType.RECOVERED,
                    status=ConditionStatus.TRUE,
                    last_transition_time=_EARLIER,
                    reason="Recovered",
                )
            ]
        )
        assert update_condition(status, _condition(ConditionStatus.TRUE, "SomethingElse")) is False
        assert status.conditions[0].last_transition_time == _EARLIER
        assert status.conditions[0].reason == "Recovered"

    def test_repeated_update_is_idempotent(self) -> None:
        status = AbnormalStatus()
        update_condition(status, _condition(ConditionStatus.TRUE))
        snapshot = list(status.conditions)
        update_condition(status, _condition(ConditionStatus.TRUE))
        assert status.conditions == snapshot

    def test_status_change_replaces_in_place(self) -> None:
        status = AbnormalStatus(
            conditions=[
                AbnormalCondition(type=ConditionType.IDENTIFIED, status=ConditionStatus.TRUE),
                AbnormalCondition(
                    type=ConditionType.RECOVERED,
                    status=ConditionStatus.FALSE,
                    last_transition_time=_EARLIER,
                ),
            ]
        )
        assert update_condition(status, _condition(ConditionStatus.TRUE, "Recovered", "done")) is True
        assert len(status.conditions) == 2
        updated = status.conditions[1]
        assert updated.status == ConditionStatus.TRUE
        assert updated.reason == "Recovered"
        assert updated.message == "done"
        assert updated.last_transition_time is not None
        assert updated.last_transition_time > _EARLIER
