"""Function table assembly: real implementations first, generic mocks for the rest."""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from rulescope.runtime.functions import BUILTIN_FUNCTION_NAMES
from rulescope.utils import iter_child_definitions

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rulescope.functions.loader import LoadedFunctions

FUNCTION_CALL_PATTERN = re.compile(r"([A-Za-z_]\w*)\s*\(")

# fmt: off
EXCLUDED_CALL_NAMES = frozenset(
    {
        *keyword.kwlist,
        "if", "else", "for", "while", "do", "switch", "case", "return",
        "typeof", "instanceof", "new", "delete", "void", "function",
        "true", "false", "null", "undefined", "NaN", "Infinity",
        *BUILTIN_FUNCTION_NAMES,
    }
)
# fmt: on

_EXPRESSION_KEYS = ("validationExpression", "displayValueExpression")

BindingKind = Literal["real", "mock"]


@dataclass(frozen=True)
class FunctionBinding:
    """A function-table entry tagged with where its implementation came from."""

    name: str
    kind: BindingKind
    call: Callable[..., Any]


def _names_in(expression: Any) -> Iterable[str]:
    if not isinstance(expression, str):
        return ()
    return (
        match.group(1)
        for match in FUNCTION_CALL_PATTERN.finditer(expression)
        if match.group(1) not in EXCLUDED_CALL_NAMES
    )


def _node_expressions(node: dict[str, Any]) -> Iterable[Any]:
    events = node.get("events")
    if isinstance(events, dict):
        for handlers in events.values():
            if isinstance(handlers, list):
                yield from handlers
            else:
                yield handlers

    rules = node.get("rules")
    if isinstance(rules, dict):
        for rule in rules.values():
            if isinstance(rule, dict):
                yield rule.get("expression")
            else:
                yield rule

    for key in _EXPRESSION_KEYS:
        yield node.get(key)


def extract_function_names(definition: dict[str, Any]) -> list[str]:
    """Collect every function name called from the form's rules and events.

    Names are returned in first-seen order of a pre-order walk.
    """
    found: dict[str, None] = {}

    def _walk(node: Any) -> None:
        if not isinstance(node, dict):
            return
        for expression in _node_expressions(node):
            for name in _names_in(expression):
                found.setdefault(name, None)
        for _key, child in iter_child_definitions(node):
            _walk(child)

    _walk(definition)
    return list(found)


async def _mock_function(*_args: Any, **_kwargs: Any) -> None:
    return None


def synthesize_mocks(
    names: Iterable[str], resolved: Iterable[str] = ()
) -> dict[str, Callable[..., Any]]:
    """Return a generic async no-op for each name without a real implementation."""
    skip = set(resolved)
    return {name: _mock_function for name in names if name not in skip}


@dataclass
class FunctionTable:
    bindings: dict[str, FunctionBinding]

    @property
    def real_count(self) -> int:
        return sum(1 for binding in self.bindings.values() if binding.kind == "real")

    @property
    def mock_count(self) -> int:
        return sum(1 for binding in self.bindings.values() if binding.kind == "mock")

    def callables(self) -> dict[str, Callable[..., Any]]:
        return {name: binding.call for name, binding in self.bindings.items()}


def build_function_table(
    loaded: LoadedFunctions | None,
    referenced_names: Iterable[str],
) -> FunctionTable:
    """Combine loaded implementations with mocks for every other referenced name."""
    real = loaded.functions if loaded is not None else {}
    bindings = {
        name: FunctionBinding(name=name, kind="real", call=fn)
        for name, fn in real.items()
    }
    for name, mock in synthesize_mocks(referenced_names, resolved=real).items():
        bindings[name] = FunctionBinding(name=name, kind="mock", call=mock)
    return FunctionTable(bindings=bindings)


__all__ = [
    "EXCLUDED_CALL_NAMES",
    "FUNCTION_CALL_PATTERN",
    "FunctionBinding",
    "FunctionTable",
    "build_function_table",
    "extract_function_names",
    "synthesize_mocks",
]
