"""Graph algorithms for rule dependency cycles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rulescope.graph.builders import DependencyGraph


@dataclass(frozen=True)
class Cycle:
    """A closed dependency loop.

    ``fields`` is the loop in traversal order, closed by repeating its first
    field. ``path`` is the full DFS path that led into the loop.
    """

    key: str
    fields: list[str]
    path: list[str]


def cycle_key(fields: list[str]) -> str:
    """Canonical key shared by every rotation of the same loop."""
    return "->".join(sorted(set(fields)))


class _CycleSearchState:
    """Mutable state container for the depth-first cycle search."""

    def __init__(self) -> None:
        self.visited: set[str] = set()
        self.on_stack: set[str] = set()
        self.cycles: list[Cycle] = []
        self.keys: set[str] = set()


def _record_cycle(state: _CycleSearchState, name: str, path: list[str]) -> None:
    start = path.index(name)
    fields = [*path[start:], name]
    key = cycle_key(fields)
    if key in state.keys:
        return
    state.keys.add(key)
    state.cycles.append(Cycle(key=key, fields=fields, path=[*path, name]))


def _enter(
    name: str,
    graph: DependencyGraph,
    state: _CycleSearchState,
    path: list[str],
    pending: list[Iterator[str]],
) -> None:
    state.visited.add(name)
    state.on_stack.add(name)
    path.append(name)
    node = graph.dependencies.get(name)
    pending.append(iter(node.depends_on if node is not None else ()))


def _search_from(root: str, graph: DependencyGraph, state: _CycleSearchState) -> None:
    # Explicit stacks keep deep chains clear of the interpreter recursion limit.
    path: list[str] = []
    pending: list[Iterator[str]] = []
    _enter(root, graph, state, path, pending)

    while pending:
        dependency = next(pending[-1], None)
        if dependency is None:
            pending.pop()
            state.on_stack.discard(path.pop())
        elif dependency in state.on_stack:
            _record_cycle(state, dependency, path)
        elif dependency not in state.visited:
            _enter(dependency, graph, state, path, pending)


def find_cycles(graph: DependencyGraph) -> list[Cycle]:
    """Find dependency cycles by depth-first search over ``depends_on`` edges.

    Loops are deduplicated by :func:`cycle_key`; the first traversal of a
    loop is kept with its field order intact.
    """
    state = _CycleSearchState()
    for name in graph.dependencies:
        if name not in state.visited:
            _search_from(name, graph, state)
    return state.cycles


__all__ = ["Cycle", "cycle_key", "find_cycles"]
