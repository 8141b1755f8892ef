"""Tests for toolwright.learning.miner.

The miner is pure, so executions are built in memory rather than read
from a store.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta
from typing import Any

import pytest

from toolwright.core.config import MiningConfig
from toolwright.learning.miner import PatternMiner, generate_tool_name
from toolwright.store import PatternType, ToolExecution


def _exec(
    tool_name: str,
    params: dict[str, Any] | str | None = None,
    *,
    success: bool = True,
    offset: int = 0,
) -> ToolExecution:
    """Build a ToolExecution with defaults for testing."""
    if params is None:
        params = {}
    return ToolExecution(
        id=str(uuid.uuid4()),
        tool_name=tool_name,
        parameters=params if isinstance(params, str) else json.dumps(params),
        success=success,
        created_at=datetime(2026, 1, 1, 12, 0) + timedelta(seconds=offset),
    )


def _sequence(*tool_names: str) -> list[ToolExecution]:
    return [_exec(name, offset=i) for i, name in enumerate(tool_names)]


@pytest.fixture
def miner() -> PatternMiner:
    return PatternMiner(MiningConfig())


# =========================================================================
# generate_tool_name
# =========================================================================


class TestGenerateToolName:
    def test_short_sequence_joins_actions(self) -> None:
        assert generate_tool_name(["search_customers", "record_load"]) == "search_record"

    def test_long_sequence_uses_initials(self) -> None:
        assert generate_tool_name(["a_x", "b_x", "c_x", "d_x"]) == "abcd_sequence"

    def test_name_without_underscore(self) -> None:
        assert generate_tool_name(["Search", "Load"]) == "search_load"


# =========================================================================
# mine()
# =========================================================================


class TestMine:
    """Tests for PatternMiner.mine()."""

    def test_fewer_than_two_executions_is_empty(self, miner: PatternMiner) -> None:
        assert miner.mine([]) == []
        assert miner.mine([_exec("a")]) == []

    def test_repeated_pair_detected(self, miner: PatternMiner) -> None:
        candidates = miner.mine(_sequence("a", "b", "a", "b"))

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.pattern_type == PatternType.SEQUENCE
        assert candidate.signature == "a:{}->b:{}"
        assert candidate.occurrences == 2
        assert candidate.confidence == pytest.approx(0.4)

    def test_failed_executions_never_contribute(self, miner: PatternMiner) -> None:
        executions = [
            _exec("a", offset=0),
            _exec("b", offset=1),
            _exec("c", offset=2, success=False),
            _exec("a", offset=3),
            _exec("b", offset=4),
        ]
        candidates = miner.mine(executions)

        assert candidates
        assert all("c:" not in c.signature for c in candidates)
        signatures = {c.signature for c in candidates}
        assert "a:{}->b:{}" in signatures

    def test_malformed_parameters_skipped(self, miner: PatternMiner) -> None:
        executions = [
            _exec("a", offset=0),
            _exec("x", "{not json", offset=1),
            _exec("b", offset=2),
            _exec("y", "[1, 2]", offset=3),
            _exec("a", offset=4),
            _exec("b", offset=5),
        ]
        candidates = miner.mine(executions)

        signatures = {c.signature for c in candidates}
        assert signatures == {"a:{}->b:{}"}

    def test_window_length_bounded(self) -> None:
        miner = PatternMiner(MiningConfig(max_window=3))
        candidates = miner.mine(_sequence(*["a"] * 10))

        lengths = {
            c.pattern_data["length"]
            for c in candidates
            if c.pattern_type == PatternType.SEQUENCE
        }
        assert lengths == {2, 3}

    def test_confidence_capped_at_one(self) -> None:
        miner = PatternMiner(MiningConfig(max_window=2))
        candidates = miner.mine(_sequence(*["a", "b"] * 10))

        pair = next(c for c in candidates if c.signature == "a:{}->b:{}")
        assert pair.occurrences == 10
        assert pair.confidence == 1.0

    def test_normalized_params_share_signature(self, miner: PatternMiner) -> None:
        executions = [
            _exec("search", {"limit": 10}, offset=0),
            _exec("load", {"id": 1}, offset=1),
            _exec("search", {"limit": 50}, offset=2),
            _exec("load", {"id": 7}, offset=3),
        ]
        candidates = miner.mine(executions)

        seq = [c for c in candidates if c.pattern_type == PatternType.SEQUENCE]
        assert [c.signature for c in seq] == [
            'search:{"limit": "<number>"}->load:{"id": "<number>"}'
        ]

    def test_sequence_pattern_data_and_suggestion(self, miner: PatternMiner) -> None:
        executions = [
            _exec("search_customers", {"limit": 10}, offset=0),
            _exec("record_load", {"id": 1}, offset=1),
            _exec("search_customers", {"limit": 10}, offset=2),
            _exec("record_load", {"id": 2}, offset=3),
        ]
        candidate = next(
            c for c in miner.mine(executions) if c.pattern_type == PatternType.SEQUENCE
        )

        assert candidate.pattern_data["steps"] == [
            {"tool_name": "search_customers", "params": {"limit": "<number>"}},
            {"tool_name": "record_load", "params": {"id": "<number>"}},
        ]
        suggestion = candidate.suggestion
        assert suggestion["name"] == "auto_search_record"
        assert [s["action"] for s in suggestion["steps"]] == [
            "search_customers",
            "record_load",
        ]
        assert suggestion["parameters"] == ["limit", "id"]


# =========================================================================
# Parameter patterns
# =========================================================================


class TestParameterPatterns:
    """Tests for per-tool parameter pattern detection."""

    def test_constant_and_variable_values(self, miner: PatternMiner) -> None:
        executions = [
            _exec("search", {"type": "customer", "limit": 10}, offset=0),
            _exec("search", {"type": "customer", "limit": 25}, offset=1),
        ]
        candidates = [
            c
            for c in miner.mine(executions)
            if c.pattern_type == PatternType.PARAMETER
        ]

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.signature.startswith("param:search:")
        body = json.loads(candidate.signature[len("param:search:") :])
        assert body == {
            "common": ["limit", "type"],
            "varying": [],
            "constants": {"type": "customer"},
        }
        assert candidate.occurrences == 2
        assert candidate.confidence == pytest.approx(0.3)

        patterns = {p["key"]: p for p in candidate.pattern_data["value_patterns"]}
        assert patterns["type"] == {"key": "type", "type": "constant", "value": "customer"}
        assert patterns["limit"] == {"key": "limit", "type": "variable", "data_type": "number"}

        suggestion = candidate.suggestion
        assert suggestion["name"] == "auto_search_preset"
        assert suggestion["base_tool"] == "search"
        assert suggestion["preset_params"] == {"type": "customer"}

    def test_varying_keys(self) -> None:
        shape = PatternMiner.find_parameter_pattern(
            [{"a": 1, "b": 2}, {"a": 1, "c": 3}]
        )
        assert shape is not None
        assert shape["common_keys"] == ["a"]
        assert sorted(shape["varying_keys"]) == ["b", "c"]

    def test_mixed_kinds_give_no_value_pattern(self) -> None:
        shape = PatternMiner.find_parameter_pattern([{"a": 1}, {"a": "one"}])
        assert shape is not None
        assert shape["value_patterns"] == []
        assert shape["common_keys"] == ["a"]

    def test_bool_and_int_are_not_constant(self) -> None:
        shape = PatternMiner.find_parameter_pattern([{"a": 1}, {"a": True}])
        assert shape is not None
        assert all(p["type"] != "constant" for p in shape["value_patterns"])

    def test_no_common_keys_yields_nothing(self) -> None:
        assert PatternMiner.find_parameter_pattern([{"a": 1}, {"b": 2}]) is None
        assert PatternMiner.find_parameter_pattern([{}, {}]) is None

    def test_single_call_group_ignored(self, miner: PatternMiner) -> None:
        executions = [
            _exec("search", {"type": "customer"}, offset=0),
            _exec("load", {"id": 1}, offset=1),
        ]
        assert all(
            c.pattern_type != PatternType.PARAMETER for c in miner.mine(executions)
        )
