"""Eligibility checks applied before an Abnormal is processed."""

from __future__ import annotations

from kubediag.models.abnormal import Abnormal, NamespacedName


def is_node_name_matched(abnormal: Abnormal, node_name: str) -> bool:
    """An empty target node name is a wildcard; otherwise names must be equal."""
    target = abnormal.spec.node_name
    return target == "" or target == node_name


def is_processor_assigned(processor: NamespacedName, assigned: list[NamespacedName]) -> bool:
    """An empty assignment list admits every processor."""
    return not assigned or processor in assigned
