"""Pattern mining over recent successful tool executions.

The miner is a pure function of its input slice: it never touches the
store. It detects two kinds of candidates:

- Sequence patterns: contiguous runs of 2..5 tool calls whose normalized
  signature repeats within the slice.
- Parameter patterns: per-tool parameter shapes (common keys, varying
  keys, constant and variable values) shared by repeated calls.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from toolwright.core.config import MiningConfig
from toolwright.core.logging import get_logger
from toolwright.learning.normalize import (
    canonical,
    normalize_params,
    sequence_signature,
    value_kind,
)
from toolwright.store.models import PatternType, ToolExecution

_logger = get_logger("learning.miner")


@dataclass
class ParsedExecution:
    """An execution whose parameters parsed to a JSON object."""

    tool_name: str
    params: dict[str, Any]


@dataclass
class PatternCandidate:
    """A pattern detected in one mining pass, before it is stored."""

    pattern_type: PatternType
    signature: str
    occurrences: int
    confidence: float
    pattern_data: dict[str, Any]
    suggestion: dict[str, Any] = field(default_factory=dict)


def generate_tool_name(tool_names: Sequence[str]) -> str:
    """Derive a short name for a sequence of tools.

    Each tool contributes the part of its name before the first
    underscore. Up to three steps are joined with underscores; longer
    sequences use their initials followed by ``_sequence``.

    Example:
        >>> generate_tool_name(["search_customers", "record_load"])
        'search_record'
        >>> generate_tool_name(["a_x", "b_x", "c_x", "d_x"])
        'abcd_sequence'
    """
    actions = [name.split("_")[0] or name for name in tool_names]
    if len(actions) <= 3:
        return "_".join(actions).lower()
    return "".join(action[0] for action in actions).lower() + "_sequence"


def _unique_keys(param_sets: Sequence[dict[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for params in param_sets:
        for key in params:
            seen.setdefault(key, None)
    return list(seen)


class PatternMiner:
    """Detects candidate patterns in a chronologically ordered slice.

    Example:
        miner = PatternMiner(MiningConfig())
        candidates = miner.mine(store.get_successful_executions())
    """

    def __init__(self, config: MiningConfig | None = None) -> None:
        self.config = config or MiningConfig()

    def mine(self, executions: Sequence[ToolExecution]) -> list[PatternCandidate]:
        """Run sequence and parameter detection over a slice.

        Failed executions and executions whose parameters are not a JSON
        object are dropped before any windowing.

        Returns:
            Sequence candidates followed by parameter candidates. Empty when
            fewer than two usable executions remain.
        """
        parsed = self._parse(executions)
        if len(parsed) < 2:
            _logger.debug("mining_skipped", usable_executions=len(parsed))
            return []

        candidates = self.detect_sequences(parsed) + self.detect_parameter_patterns(
            parsed
        )
        _logger.info(
            "mining_completed",
            executions=len(parsed),
            candidates=len(candidates),
        )
        return candidates

    def _parse(self, executions: Sequence[ToolExecution]) -> list[ParsedExecution]:
        parsed: list[ParsedExecution] = []
        for execution in executions:
            if not execution.success:
                continue
            try:
                params = json.loads(execution.parameters)
            except (json.JSONDecodeError, TypeError):
                params = None
            if not isinstance(params, dict):
                _logger.debug(
                    "execution_parameters_malformed",
                    execution_id=execution.id,
                    tool_name=execution.tool_name,
                )
                continue
            parsed.append(ParsedExecution(execution.tool_name, params))
        return parsed

    def detect_sequences(
        self, executions: Sequence[ParsedExecution]
    ) -> list[PatternCandidate]:
        """Count every contiguous window of each allowed length."""
        cfg = self.config
        counts: Counter[str] = Counter()
        first_window: dict[str, Sequence[ParsedExecution]] = {}

        longest = min(cfg.max_window, len(executions))
        for length in range(cfg.min_window, longest + 1):
            for start in range(len(executions) - length + 1):
                window = executions[start : start + length]
                signature = sequence_signature(
                    ((e.tool_name, e.params) for e in window),
                    cfg.literal_string_max_length,
                )
                counts[signature] += 1
                first_window.setdefault(signature, window)

        candidates = []
        for signature, count in counts.items():
            if count < cfg.pattern_threshold:
                continue
            window = first_window[signature]
            candidates.append(
                PatternCandidate(
                    pattern_type=PatternType.SEQUENCE,
                    signature=signature,
                    occurrences=count,
                    confidence=round(min(1.0, count * cfg.sequence_confidence_step), 6),
                    pattern_data={
                        "length": len(window),
                        "steps": [
                            {
                                "tool_name": e.tool_name,
                                "params": json.loads(
                                    normalize_params(
                                        e.params, cfg.literal_string_max_length
                                    )
                                ),
                            }
                            for e in window
                        ],
                    },
                    suggestion=self._sequence_suggestion(window),
                )
            )
        return candidates

    def _sequence_suggestion(
        self, window: Sequence[ParsedExecution]
    ) -> dict[str, Any]:
        return {
            "name": f"auto_{generate_tool_name([e.tool_name for e in window])}",
            "description": f"Automated sequence of {len(window)} actions",
            "steps": [{"action": e.tool_name, "params": e.params} for e in window],
            "parameters": _unique_keys([e.params for e in window]),
        }

    def detect_parameter_patterns(
        self, executions: Sequence[ParsedExecution]
    ) -> list[PatternCandidate]:
        """Find shared parameter shapes per tool."""
        cfg = self.config
        groups: dict[str, list[dict[str, Any]]] = {}
        for execution in executions:
            groups.setdefault(execution.tool_name, []).append(execution.params)

        candidates = []
        for tool_name, param_sets in groups.items():
            if len(param_sets) < cfg.pattern_threshold:
                continue
            shape = self.find_parameter_pattern(param_sets)
            if shape is None:
                continue

            constants = {
                p["key"]: p["value"]
                for p in shape["value_patterns"]
                if p["type"] == "constant"
            }
            signature_body = canonical(
                {
                    "common": sorted(shape["common_keys"]),
                    "varying": sorted(shape["varying_keys"]),
                    "constants": constants,
                }
            )
            candidates.append(
                PatternCandidate(
                    pattern_type=PatternType.PARAMETER,
                    signature=f"param:{tool_name}:{signature_body}",
                    occurrences=len(param_sets),
                    confidence=round(
                        min(1.0, len(param_sets) * cfg.parameter_confidence_step), 6
                    ),
                    pattern_data={"tool_name": tool_name, **shape},
                    suggestion={
                        "name": f"auto_{tool_name}_preset",
                        "description": f"Preset configuration for {tool_name}",
                        "base_tool": tool_name,
                        "preset_params": constants,
                        "variable_params": shape["varying_keys"],
                    },
                )
            )
        return candidates

    @staticmethod
    def find_parameter_pattern(
        param_sets: Sequence[dict[str, Any]],
    ) -> dict[str, Any] | None:
        """Describe the parameter shape shared by a group of calls.

        Returns:
            Dict with ``common_keys``, ``varying_keys`` and
            ``value_patterns``, or None when there is no common key and no
            value pattern.
        """
        if len(param_sets) < 2:
            return None

        all_keys = _unique_keys(param_sets)
        common_keys = [k for k in all_keys if all(k in p for p in param_sets)]
        varying_keys = [k for k in all_keys if k not in common_keys]

        value_patterns: list[dict[str, Any]] = []
        for key in common_keys:
            values = [p[key] for p in param_sets]
            if len({canonical(v) for v in values}) == 1:
                value_patterns.append(
                    {"key": key, "type": "constant", "value": values[0]}
                )
                continue
            kinds = {value_kind(v) for v in values}
            if len(kinds) == 1:
                value_patterns.append(
                    {
                        "key": key,
                        "type": "variable",
                        "data_type": kinds.pop().name.lower(),
                    }
                )

        if not common_keys and not value_patterns:
            return None
        return {
            "common_keys": common_keys,
            "varying_keys": varying_keys,
            "value_patterns": value_patterns,
        }
