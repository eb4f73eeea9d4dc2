# tests/core/test_canonical.py
"""Tests for canonical JSON serialization."""

from enum import Enum

import pytest


class TestNormalizeValue:
    """Test _normalize_value handles Python primitives."""

    def test_primitives_pass_through(self) -> None:
        from casket.core.canonical import _normalize_value

        assert _normalize_value("hello") == "hello"
        assert _normalize_value(42) == 42
        assert _normalize_value(None) is None
        assert _normalize_value(True) is True

    def test_tuples_become_lists(self) -> None:
        from casket.core.canonical import _normalize_value

        assert _normalize_value(("a", ("b",))) == ["a", ["b"]]

    def test_enums_become_values(self) -> None:
        from casket.core.canonical import _normalize_value

        class Color(Enum):
            RED = "red"

        assert _normalize_value({"c": Color.RED}) == {"c": "red"}

    def test_non_string_keys_rejected(self) -> None:
        from casket.core.canonical import _normalize_value

        with pytest.raises(ValueError, match="keys must be strings"):
            _normalize_value({1: "x"})

    def test_unknown_types_rejected(self) -> None:
        from casket.core.canonical import _normalize_value

        with pytest.raises(ValueError, match="Cannot canonicalize"):
            _normalize_value(object())


class TestNanInfinityRejection:
    """NaN and Infinity must be rejected, not silently converted."""

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_raises(self, value: float) -> None:
        from casket.core.canonical import canonical_bytes

        with pytest.raises(ValueError, match="non-finite"):
            canonical_bytes({"x": value})


class TestCanonicalJson:
    def test_keys_sorted_no_whitespace(self) -> None:
        from casket.core.canonical import canonical_bytes

        assert canonical_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_key_order_does_not_matter(self) -> None:
        from casket.core.canonical import canonical_bytes

        assert canonical_bytes({"a": 1, "b": 2}) == canonical_bytes({"b": 2, "a": 1})
