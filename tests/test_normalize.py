"""Tests for toolwright.learning.normalize."""

from __future__ import annotations

import json

import pytest

from toolwright.learning.normalize import (
    STEP_SEPARATOR,
    ValueShape,
    canonical,
    classify,
    normalize_params,
    sequence_signature,
    value_kind,
)


class TestClassify:
    """Tests for value shape classification."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("open", ValueShape.LITERAL),
            ("x" * 20, ValueShape.LITERAL),
            ("x" * 21, ValueShape.STRING),
            (10, ValueShape.NUMBER),
            (2.5, ValueShape.NUMBER),
            (True, ValueShape.BOOLEAN),
            (False, ValueShape.BOOLEAN),
            ([1, 2], ValueShape.ARRAY),
            ({"a": 1}, ValueShape.OBJECT),
            (None, ValueShape.LITERAL),
        ],
    )
    def test_classify(self, value: object, expected: ValueShape) -> None:
        assert classify(value) is expected

    def test_literal_threshold_is_configurable(self) -> None:
        assert classify("abcdef", literal_max_length=5) is ValueShape.STRING
        assert classify("abcde", literal_max_length=5) is ValueShape.LITERAL

    def test_value_kind_ignores_length(self) -> None:
        assert value_kind("short") is ValueShape.STRING
        assert value_kind("x" * 100) is ValueShape.STRING

    def test_bool_is_not_number(self) -> None:
        assert value_kind(True) is ValueShape.BOOLEAN
        assert value_kind(1) is ValueShape.NUMBER


class TestNormalizeParams:
    """Tests for parameter normalization."""

    def test_key_order_irrelevant(self) -> None:
        a = normalize_params({"limit": 10, "type": "customer"})
        b = normalize_params({"type": "customer", "limit": 10})
        assert a == b

    def test_values_replaced_by_shapes(self) -> None:
        result = json.loads(
            normalize_params(
                {
                    "limit": 10,
                    "query": "a rather long search string",
                    "type": "customer",
                    "active": True,
                    "ids": [1, 2],
                    "filter": {"x": 1},
                    "cursor": None,
                }
            )
        )
        assert result == {
            "active": "<boolean>",
            "cursor": None,
            "filter": "<object>",
            "ids": "<array>",
            "limit": "<number>",
            "query": "<string>",
            "type": "customer",
        }

    def test_different_numbers_share_normal_form(self) -> None:
        assert normalize_params({"limit": 10}) == normalize_params({"limit": 500})

    def test_different_short_literals_differ(self) -> None:
        assert normalize_params({"type": "customer"}) != normalize_params(
            {"type": "vendor"}
        )


class TestSequenceSignature:
    """Tests for sequence signature generation."""

    def test_single_step(self) -> None:
        assert sequence_signature([("search", {"limit": 10})]) == (
            'search:{"limit": "<number>"}'
        )

    def test_steps_joined_in_order(self) -> None:
        sig = sequence_signature([("a", {}), ("b", {})])
        assert sig == f"a:{{}}{STEP_SEPARATOR}b:{{}}"
        assert sig != sequence_signature([("b", {}), ("a", {})])

    def test_deterministic_across_key_order(self) -> None:
        first = sequence_signature([("a", {"x": 1, "y": "z"}), ("b", {"q": [1]})])
        second = sequence_signature([("a", {"y": "z", "x": 2}), ("b", {"q": [3, 4]})])
        assert first == second


class TestCanonical:
    def test_distinguishes_bool_and_int(self) -> None:
        assert canonical(True) != canonical(1)

    def test_dict_key_order_irrelevant(self) -> None:
        assert canonical({"a": 1, "b": 2}) == canonical({"b": 2, "a": 1})
