"""Unit tests for kernel types."""

from __future__ import annotations

import pytest

from mp_eventbus.kernel.types import Err, Ok


class TestOk:
    def test_value(self) -> None:
        result = Ok(3)
        assert result.value == 3
        assert result.unwrap() == 3
        assert result.is_ok()
        assert not result.is_err()

    def test_equality(self) -> None:
        assert Ok(True) == Ok(True)
        assert Ok(True) != Ok(False)
        assert hash(Ok("a")) == hash(Ok("a"))


class TestErr:
    def test_error(self) -> None:
        exc = ValueError("bad")
        result = Err(exc)
        assert result.error is exc
        assert result.is_err()
        assert not result.is_ok()

    def test_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="bad"):
            Err(ValueError("bad")).unwrap()

    def test_repr(self) -> None:
        assert repr(Err(KeyError("k"))).startswith("Err(")
