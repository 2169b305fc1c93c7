"""Tests for ContextStore over the raw context blob."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from kubediag.chain.context import (
    ContextDecodeError,
    ContextEmptyError,
    ContextKeyError,
    ContextNotFoundError,
    ContextStore,
)
from kubediag.models.abnormal import AbnormalStatus


def _store(raw: bytes | None) -> tuple[ContextStore, AbnormalStatus]:
    status = AbnormalStatus(context=raw)
    return ContextStore(status), status


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestGet:
    def test_nil_context_raises_not_found(self) -> None:
        store, _ = _store(None)
        with pytest.raises(ContextNotFoundError, match="abnormal context nil"):
            store.get("key")

    def test_empty_context_raises_empty(self) -> None:
        store, _ = _store(b"")
        with pytest.raises(ContextEmptyError, match="abnormal context empty"):
            store.get("key")

    def test_absent_key_returns_default(self) -> None:
        store, _ = _store(b'{"a":1}')
        assert store.get("b") is None
        assert store.get("b", 7) == 7

    def test_require_absent_key_raises(self) -> None:
        store, _ = _store(b'{"a":1}')
        with pytest.raises(ContextKeyError):
            store.require("b")
        assert store.require("a") == 1

    def test_corrupt_context_raises_decode_error(self) -> None:
        store, _ = _store(b"{not json")
        with pytest.raises(ContextDecodeError):
            store.get("a")

    def test_non_object_context_raises_decode_error(self) -> None:
        store, _ = _store(b"[1,2]")
        with pytest.raises(ContextDecodeError):
            store.keys()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestSet:
    @pytest.mark.parametrize("raw", [None, b""])
    def test_set_on_missing_context_creates_object(self, raw: bytes | None) -> None:
        store, status = _store(raw)
        store.set("pods", ["web-0"])
        assert status.context == b'{"pods":["web-0"]}'

    def test_set_overwrites_and_keeps_other_keys(self) -> None:
        store, status = _store(b'{"b":2,"a":1}')
        store.set("a", "x")
        assert status.context == b'{"a":"x","b":2}'

    def test_set_on_corrupt_context_leaves_blob_untouched(self) -> None:
        store, status = _store(b"{not json")
        with pytest.raises(ContextDecodeError):
            store.set("a", 1)
        assert status.context == b"{not json"

    def test_unserialisable_value_raises_type_error(self) -> None:
        store, status = _store(b'{"a":1}')
        with pytest.raises(TypeError):
            store.set("b", object())
        assert status.context == b'{"a":1}'

    @given(
        key=st.text(min_size=1, max_size=20),
        value=st.recursive(
            st.none() | st.booleans() | st.integers() | st.text(max_size=20),
            lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(max_size=5), children, max_size=3),
            max_leaves=10,
        ),
    )
    def test_set_then_get_returns_value(self, key: str, value: object) -> None:
        store, _ = _store(None)
        store.set(key, value)
        assert store.get(key) == value


class TestRemove:
    @pytest.mark.parametrize("raw", [None, b""])
    def test_remove_on_missing_context_is_success(self, raw: bytes | None) -> None:
        store, status = _store(raw)
        assert store.remove("a") is True
        assert status.context == raw

    def test_remove_present_key(self) -> None:
        store, status = _store(b'{"a":1,"b":2}')
        assert store.remove("a") is True
        assert status.context == b'{"b":2}'

    def test_remove_absent_key_reports_false(self) -> None:
        store, status = _store(b'{"a":1}')
        assert store.remove("b") is False
        assert status.context == b'{"a":1}'

    def test_remove_on_corrupt_context_raises(self) -> None:
        store, status = _store(b"\xff\xfe")
        with pytest.raises(ContextDecodeError):
            store.remove("a")
        assert status.context == b"\xff\xfe"
