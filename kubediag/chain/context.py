"""Typed accessor over the opaque context blob in an Abnormal's status.

The blob is a JSON object held as raw bytes.  Three states are distinguished:

* ``None``  -- no context at all
* ``b""``   -- context present but empty
* bytes     -- an encoded JSON object (possibly corrupt)

Writes re-serialise the whole object with sorted keys and compact separators
so identical content always produces identical bytes.
"""

from __future__ import annotations

import json
from typing import Any

from kubediag.models.abnormal import AbnormalStatus, encode_raw


class ContextError(Exception):
    """Base class for context access failures."""


class ContextNotFoundError(ContextError):
    def __init__(self) -> None:
        super().__init__("abnormal context nil")


class ContextEmptyError(ContextError):
    def __init__(self) -> None:
        super().__init__("abnormal context empty")


class ContextKeyError(ContextError, KeyError):
    def __init__(self, key: str) -> None:
        super().__init__(f"abnormal context key {key!r} not found")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class ContextDecodeError(ContextError, ValueError):
    """The stored blob is not a valid JSON object."""


class ContextStore:
    """Get/set/remove keys in ``status.context``.

    The accessor is a view: every call reads the current bytes from *status*
    and mutations write them back, so it never goes stale.
    """

    def __init__(self, status: AbnormalStatus) -> None:
        self._status = status

    def _decode(self) -> dict[str, Any]:
        raw = self._status.context
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ContextDecodeError(str(exc)) from exc
        if not isinstance(value, dict):
            raise ContextDecodeError(f"abnormal context must be a JSON object, got {type(value).__name__}")
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default* if absent.

        Raises:
            ContextNotFoundError: there is no context.
            ContextEmptyError: the context is empty.
            ContextDecodeError: the context is corrupt.
        """
        if self._status.context is None:
            raise ContextNotFoundError()
        if not self._status.context:
            raise ContextEmptyError()
        return self._decode().get(key, default)

    def require(self, key: str) -> Any:
        """Like ``get`` but an absent key raises ContextKeyError."""
        if self._status.context is None:
            raise ContextNotFoundError()
        if not self._status.context:
            raise ContextEmptyError()
        data = self._decode()
        if key not in data:
            raise ContextKeyError(key)
        return data[key]

    def keys(self) -> list[str]:
        return sorted(self._decode())

    def set(self, key: str, value: Any) -> None:
        """Upsert *key*.  A nil or empty context becomes a one-key object.

        Raises:
            ContextDecodeError: the existing context is corrupt (left untouched).
            TypeError: *value* is not JSON serialisable.
        """
        data = self._decode()
        data[key] = value
        self._status.context = encode_raw(data)

    def remove(self, key: str) -> bool:
        """Delete *key*.

        Returns True when the context is nil or empty (nothing to do) or the
        key was removed, False when a valid context did not hold *key*.

        Raises:
            ContextDecodeError: the existing context is corrupt (left untouched).
        """
        if not self._status.context:
            return True
        data = self._decode()
        if key not in data:
            return False
        del data[key]
        self._status.context = encode_raw(data)
        return True
