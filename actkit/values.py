"""Truthiness, coercion and comparison rules for expression values."""

from __future__ import annotations

import math
import operator
from typing import Any, Callable, Mapping, Union

from .parser import (
    CompareOp,
    ExpressionError,
    FloatNode,
    IntNode,
    VariableNode,
    parse,
)

Number = Union[int, float]

_COMPARISONS: dict[CompareOp, Callable[[Any, Any], bool]] = {
    CompareOp.LESS: operator.lt,
    CompareOp.LESS_EQ: operator.le,
    CompareOp.GREATER: operator.gt,
    CompareOp.GREATER_EQ: operator.ge,
    CompareOp.EQ: operator.eq,
    CompareOp.NOT_EQ: operator.ne,
}


def _kind_name(value: Any) -> str:
    """The name of the value's kind, as used in error messages."""
    if value is None:
        return "invalid"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "slice"
    if isinstance(value, Mapping):
        return "map"
    return "ptr"


def is_number(value: Any) -> bool:
    """Whether ``value`` is an int or a float (booleans are not numbers)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """Truthiness of an expression value."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value != ""
    if isinstance(value, int):
        return value != 0
    if isinstance(value, float):
        return not math.isnan(value) and value != 0
    if isinstance(value, (Mapping, list, tuple)):
        return True
    return False


def coerce_to_string(value: Any) -> str:
    """Render a value the way expressions print it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if math.isnan(value):
            return "NaN"
        return "%.15G" % value
    if isinstance(value, (list, tuple)):
        return "Array"
    if isinstance(value, Mapping):
        return "Object"
    return str(value)


def _parse_number(text: str) -> Number:
    if text.startswith("${{"):
        text = text[3:]
    try:
        node = parse(text)
    except ExpressionError:
        return math.nan
    if isinstance(node, (IntNode, FloatNode)):
        return node.value
    if isinstance(node, VariableNode):
        name = node.name.lower()
        if name == "infinity":
            return math.inf
        if name == "nan":
            return math.nan
    return math.nan


def coerce_to_number(value: Any) -> Number:
    """Convert a value to a number; anything that is not numeric gives NaN."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if isinstance(value, str):
        if value == "":
            return 0
        return _parse_number(value)
    return math.nan


def compare_values(left: Any, right: Any, kind: CompareOp) -> bool:
    """Compare two values, coercing both to numbers when their kinds differ."""
    compare = _COMPARISONS.get(kind)
    if compare is None:
        raise ValueError(f"Comparison operator '{kind}' is not supported")

    if _kind_name(left) != _kind_name(right):
        if not is_number(left):
            left = coerce_to_number(left)
        if not is_number(right):
            right = coerce_to_number(right)

    left_kind = _kind_name(left)
    if left_kind == "bool":
        return compare(float(coerce_to_number(left)), float(coerce_to_number(right)))
    if left_kind == "string":
        return compare(left.lower(), right.lower())
    if left_kind in ("int", "float64"):
        return compare(float(left), float(right))
    if left_kind == "invalid":
        if right is None:
            return True
        raise ValueError(
            f"Compare params of Invalid type: left: {left_kind}, right: {_kind_name(right)}"
        )
    raise ValueError(
        f"Compare not implemented for types: left: {left_kind}, right: {_kind_name(right)}"
    )


def get_safe_value(value: Any) -> Any:
    """Normalise a result: a float zero becomes the integer 0."""
    if isinstance(value, float) and value == 0:
        return 0
    return value