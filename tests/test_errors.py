"""Tests for structraven.errors."""

from __future__ import annotations

from structraven.errors import StructravenError, add_exception_context, get_exception_context


class TestExceptionContext:
    def test_returns_same_exception(self) -> None:
        exc = ValueError("bad row")
        assert add_exception_context(exc, row_id=42) is exc

    def test_context_roundtrip(self) -> None:
        exc = add_exception_context(ValueError("bad row"), row_id=42)
        assert get_exception_context(exc) == {"row_id": 42}

    def test_repeated_calls_merge(self) -> None:
        exc = ValueError("bad row")
        add_exception_context(exc, row_id=42, table="orders")
        add_exception_context(exc, row_id=43)
        assert get_exception_context(exc) == {"row_id": 43, "table": "orders"}

    def test_missing_context_is_empty(self) -> None:
        assert get_exception_context(KeyError("x")) == {}

    def test_returns_copy(self) -> None:
        exc = add_exception_context(ValueError("x"), a=1)
        get_exception_context(exc)["a"] = 2
        assert get_exception_context(exc) == {"a": 1}


class TestStructravenError:
    def test_is_exception(self) -> None:
        assert issubclass(StructravenError, Exception)
