"""Trust boundary for processor responses.

Processors may report findings (context, command executor and profiler
results) but must return every state-machine and engine-owned field exactly
as they received it.  Fields are compared in their wire form, since that is
all a processor ever sees.
"""

from __future__ import annotations

from kubediag.models.abnormal import Abnormal, NamespacedName, format_time


class ResultValidationError(ValueError):
    """A processor response modified a protected field."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"{field_name} field of Abnormal must not be modified")
        self.field_name = field_name


def _name(value: NamespacedName | None) -> dict[str, str] | None:
    return value.to_dict() if value is not None else None


# (wire name, accessor) in the order they are checked.
_PROTECTED_FIELDS = (
    ("spec", lambda a: a.spec.to_dict()),
    ("identifiable", lambda a: a.status.identifiable),
    ("recoverable", lambda a: a.status.recoverable),
    ("phase", lambda a: a.status.phase),
    ("conditions", lambda a: [c.to_dict() for c in a.status.conditions]),
    ("message", lambda a: a.status.message),
    ("reason", lambda a: a.status.reason),
    ("startTime", lambda a: format_time(a.status.start_time)),
    ("diagnoser", lambda a: _name(a.status.diagnoser)),
    ("recoverer", lambda a: _name(a.status.recoverer)),
)


def validate_result(result: Abnormal, current: Abnormal) -> None:
    """Raise ResultValidationError if *result* changed a protected field of *current*."""
    for field_name, accessor in _PROTECTED_FIELDS:
        if accessor(result) != accessor(current):
            raise ResultValidationError(field_name)
