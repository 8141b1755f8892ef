"""Parameter shape normalization and signature generation.

Two executions whose parameters differ only in large or structurally
variable values collapse to the same normalized form, so repeated
workflows with different arguments share one signature.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

# Separator between steps in a sequence signature
STEP_SEPARATOR = "->"


class ValueShape(str, Enum):
    """Closed set of shapes a parameter value can take.

    The value of each member is the tag written into signatures.
    """

    STRING = "<string>"
    NUMBER = "<number>"
    BOOLEAN = "<boolean>"
    ARRAY = "<array>"
    OBJECT = "<object>"
    LITERAL = "<literal>"
    """Short strings and null, which are kept verbatim."""


def value_kind(value: Any) -> ValueShape:
    """Primitive kind of a JSON value, ignoring its size.

    Booleans are checked before numbers since ``bool`` subclasses ``int``.
    """
    if isinstance(value, bool):
        return ValueShape.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueShape.NUMBER
    if isinstance(value, str):
        return ValueShape.STRING
    if isinstance(value, (list, tuple)):
        return ValueShape.ARRAY
    if isinstance(value, Mapping):
        return ValueShape.OBJECT
    return ValueShape.LITERAL


def classify(value: Any, literal_max_length: int = 20) -> ValueShape:
    """Classify a value for signature purposes.

    Strings up to ``literal_max_length`` characters stay LITERAL, longer
    strings become STRING. Numbers, booleans, arrays and objects are
    always tagged by kind.
    """
    kind = value_kind(value)
    if kind is ValueShape.STRING and len(value) <= literal_max_length:
        return ValueShape.LITERAL
    return kind


def normalize_value(value: Any, literal_max_length: int = 20) -> Any:
    shape = classify(value, literal_max_length)
    if shape is ValueShape.LITERAL:
        return value
    return shape.value


def normalize_params(params: Mapping[str, Any], literal_max_length: int = 20) -> str:
    """Render parameters as canonical JSON with values replaced by shapes.

    Keys are sorted, so parameter order never affects the result.
    """
    normalized = {
        key: normalize_value(value, literal_max_length) for key, value in params.items()
    }
    return json.dumps(normalized, sort_keys=True)


def sequence_signature(
    steps: Iterable[tuple[str, Mapping[str, Any]]],
    literal_max_length: int = 20,
) -> str:
    """Build the signature of an ordered run of tool calls.

    Example:
        >>> sequence_signature([("search_customers", {"limit": 10})])
        'search_customers:{"limit": "<number>"}'
    """
    return STEP_SEPARATOR.join(
        f"{tool_name}:{normalize_params(params, literal_max_length)}"
        for tool_name, params in steps
    )


def canonical(value: Any) -> str:
    """Structural identity of a JSON value.

    Used instead of ``==`` so that ``1``, ``1.0`` and ``True`` stay distinct.
    """
    return json.dumps(value, sort_keys=True)
