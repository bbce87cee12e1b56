"""Built-in functions available to every rule expression."""

from __future__ import annotations

import functools
import math
import operator
from typing import Any, Callable

ALLOWED_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "ceil": math.ceil,
    "floor": math.floor,
    "max": max,
    "min": min,
    "round": round,
    "sqrt": math.sqrt,
}


def _length(value: Any) -> int:
    if value is None:
        return 0
    try:
        return len(value)
    except TypeError:
        return 0


def _contains(container: Any, item: Any) -> bool:
    if container is None:
        return False
    try:
        return item in container
    except TypeError:
        return False


def _if(condition: Any, when_true: Any, when_false: Any = None) -> Any:
    return when_true if condition else when_false


PURE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    **ALLOWED_FUNCTIONS,
    "length": _length,
    "contains": _contains,
    "if": _if,
}

# Bound per form instance because they act on the form's nodes and queue.
FORM_FUNCTION_NAMES = ("setProperty", "dispatchEvent")

BUILTIN_FUNCTION_NAMES = frozenset((*PURE_FUNCTIONS, *FORM_FUNCTION_NAMES))

# "if" is a Python keyword; the expression translator rewrites calls to it.
PYTHON_NAME_OVERRIDES = {"if": "if_"}


def python_name(name: str) -> str:
    return PYTHON_NAME_OVERRIDES.get(name, name)


def null_tolerant(function: Callable[..., Any]) -> Callable[..., Any]:
    """Return ``None`` instead of raising on arguments of the wrong type."""

    @functools.wraps(function)
    def call(*args: Any) -> Any:
        try:
            return function(*args)
        except (TypeError, ValueError, OverflowError):
            return None

    return call


# Null-safe operators. Compiled expressions call these in place of Python's
# operators, so a null operand yields null or false instead of raising and
# every later property read in the expression still happens.
BINARY_OPERATOR_HELPER = "__binop__"
UNARY_OPERATOR_HELPER = "__unary__"
COMPARE_HELPER = "__compare__"
ITEM_HELPER = "__item__"

_BINARY_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "Add": operator.add,
    "Sub": operator.sub,
    "Mult": operator.mul,
    "Div": operator.truediv,
    "Mod": operator.mod,
    "Pow": operator.pow,
}

_UNARY_OPERATORS: dict[str, Callable[[Any], Any]] = {
    "USub": operator.neg,
    "UAdd": operator.pos,
}

_ORDERING_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "Lt": operator.lt,
    "LtE": operator.le,
    "Gt": operator.gt,
    "GtE": operator.ge,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float))


def _coerce_null(left: Any, right: Any) -> tuple[Any, Any]:
    """Replace a null operand with the empty value of the other operand's type."""
    if left is None and right is not None:
        if _is_number(right):
            return 0, right
        if isinstance(right, str):
            return "", right
    if right is None and left is not None:
        if _is_number(left):
            return left, 0
        if isinstance(left, str):
            return left, ""
    return left, right


def null_safe_binary(name: str, left: Any, right: Any) -> Any:
    left, right = _coerce_null(left, right)
    try:
        return _BINARY_OPERATORS[name](left, right)
    except (TypeError, ValueError, ZeroDivisionError, OverflowError):
        return None


def null_safe_unary(name: str, operand: Any) -> Any:
    try:
        return _UNARY_OPERATORS[name](0 if operand is None else operand)
    except TypeError:
        return None


def _compare_pair(name: str, left: Any, right: Any) -> bool:
    if name == "Eq":
        return bool(left == right)
    if name == "NotEq":
        return bool(left != right)
    try:
        if name == "In":
            return right is not None and left in right
        if name == "NotIn":
            return right is None or left not in right
        left, right = _coerce_null(left, right)
        return bool(_ORDERING_OPERATORS[name](left, right))
    except TypeError:
        return False


def null_safe_compare(names: tuple[str, ...], *operands: Any) -> bool:
    """Evaluate a comparison chain; incomparable operands compare false."""
    return all(
        _compare_pair(name, left, right)
        for name, left, right in zip(names, operands, operands[1:])
    )


def null_safe_item(container: Any, key: Any) -> Any:
    try:
        return container[key]
    except (TypeError, KeyError, IndexError):
        return None


NULL_SAFE_OPERATORS: dict[str, Callable[..., Any]] = {
    BINARY_OPERATOR_HELPER: null_safe_binary,
    UNARY_OPERATOR_HELPER: null_safe_unary,
    COMPARE_HELPER: null_safe_compare,
    ITEM_HELPER: null_safe_item,
}


__all__ = [
    "ALLOWED_FUNCTIONS",
    "BINARY_OPERATOR_HELPER",
    "BUILTIN_FUNCTION_NAMES",
    "COMPARE_HELPER",
    "FORM_FUNCTION_NAMES",
    "ITEM_HELPER",
    "NULL_SAFE_OPERATORS",
    "PURE_FUNCTIONS",
    "UNARY_OPERATOR_HELPER",
    "null_safe_binary",
    "null_safe_compare",
    "null_safe_item",
    "null_safe_unary",
    "null_tolerant",
    "python_name",
]
