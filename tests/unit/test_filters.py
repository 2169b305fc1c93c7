"""Tests for node affinity and processor assignment filters."""

from __future__ import annotations

import pytest

from kubediag.chain.filters import is_node_name_matched, is_processor_assigned
from kubediag.models.abnormal import Abnormal, AbnormalSpec, NamespacedName, ObjectMeta


def _abnormal(node_name: str) -> Abnormal:
    return Abnormal(metadata=ObjectMeta(name="a"), spec=AbnormalSpec(node_name=node_name))


@pytest.mark.parametrize(
    ("target", "node", "expected"),
    [
        ("", "node-1", True),
        ("", "", True),
        ("node-1", "node-1", True),
        ("node-1", "node-2", False),
        ("Node-1", "node-1", False),
    ],
)
def test_node_name_matching(target: str, node: str, expected: bool) -> None:
    assert is_node_name_matched(_abnormal(target), node) is expected


class TestProcessorAssignment:
    def test_empty_assignment_admits_everything(self) -> None:
        assert is_processor_assigned(NamespacedName("ns", "p"), []) is True

    def test_assignment_matches_namespace_and_name(self) -> None:
        assigned = [NamespacedName("ns", "p")]
        assert is_processor_assigned(NamespacedName("ns", "p"), assigned) is True
        assert is_processor_assigned(NamespacedName("other", "p"), assigned) is False
        assert is_processor_assigned(NamespacedName("ns", "q"), assigned) is False
