"""Dependency graph construction from a settled form instance."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from rulescope.config import DEFAULT_REFERENCE_SUFFIXES

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from rulescope.runtime.model import Form, FormNode

logger = logging.getLogger(__name__)

_FORM_REFERENCE = re.compile(r"\$form\.([A-Za-z_]\w*)")


@dataclass
class DependencyNode:
    """Forward and reverse edges of one field."""

    id: str | None = None
    dependents: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """Field name to edges, plus the rule counts gathered while building it."""

    total_rules: int = 0
    fields_with_rules: int = 0
    dependencies: dict[str, DependencyNode] = field(default_factory=dict)
    strategy: str = "engine"

    def is_empty(self) -> bool:
        return not self.dependencies

    def edges(self) -> set[tuple[str, str]]:
        """Return every ``(source, dependent)`` pair."""
        return {
            (name, dependent)
            for name, node in self.dependencies.items()
            for dependent in node.dependents
        }


def _count_rules(graph: DependencyGraph, node: FormNode) -> None:
    rules = node.json_model.get("rules")
    if isinstance(rules, dict) and rules:
        graph.fields_with_rules += 1
        graph.total_rules += len(rules)


def _assemble(
    graph: DependencyGraph, forward: Iterable[tuple[str, str, Sequence[str]]]
) -> DependencyGraph:
    """Fill ``graph`` from ``(name, id, dependents)`` rows and derive ``depends_on``."""
    for name, node_id, dependents in forward:
        entry = graph.dependencies.setdefault(name, DependencyNode())
        entry.id = node_id
        for dependent in dependents:
            if dependent != name and dependent not in entry.dependents:
                entry.dependents.append(dependent)

    for name, entry in list(graph.dependencies.items()):
        for dependent in entry.dependents:
            target = graph.dependencies.setdefault(dependent, DependencyNode())
            if name not in target.depends_on:
                target.depends_on.append(name)
    return graph


class GraphBuilder(Protocol):
    strategy: str

    def build(self, form: Form) -> DependencyGraph: ...


class EngineGraphBuilder:
    """Reads the dependents the engine recorded while rules ran."""

    strategy = "engine"

    def build(self, form: Form) -> DependencyGraph:
        graph = DependencyGraph(strategy=self.strategy)
        forward: list[tuple[str, str, list[str]]] = []

        def _collect(node: FormNode) -> None:
            if not node.name:
                return
            _count_rules(graph, node)
            names = [
                dependent.node.name
                for dependent in node.dependents
                if dependent.node.name and dependent.node.name != node.name
            ]
            if names:
                forward.append((node.name, node.id, names))

        form.visit(_collect)
        return _assemble(graph, forward)


class ExpressionGraphBuilder:
    """Pattern-matches rule expression text for field references."""

    strategy = "expression"

    def __init__(
        self, reference_suffixes: Sequence[str] = DEFAULT_REFERENCE_SUFFIXES
    ) -> None:
        suffixes = "|".join(re.escape(suffix) for suffix in reference_suffixes)
        self._field_reference = re.compile(
            rf"(?<![\w$])([A-Za-z_]\w*)\.\$(?:{suffixes})\b"
        )

    def references(self, expression: str) -> list[str]:
        """Return referenced names in order of first appearance."""
        found: dict[str, None] = {}
        for pattern in (self._field_reference, _FORM_REFERENCE):
            for match in pattern.finditer(expression):
                found.setdefault(match.group(1), None)
        return list(found)

    def build(self, form: Form) -> DependencyGraph:
        graph = DependencyGraph(strategy=self.strategy)
        named: list[FormNode] = []

        def _collect(node: FormNode) -> None:
            if node.name:
                _count_rules(graph, node)
                named.append(node)

        form.visit(_collect)
        ids: dict[str, str] = {}
        for node in named:
            ids.setdefault(node.name, node.id)  # type: ignore[arg-type]

        dependents_of: dict[str, list[str]] = {}
        for node in named:
            for expression in node.rules.values():
                for reference in self.references(expression):
                    if reference in ids and reference != node.name:
                        readers = dependents_of.setdefault(reference, [])
                        readers.append(node.name)  # type: ignore[arg-type]

        forward = [
            (name, ids[name], dependents_of[name])
            for name in ids
            if name in dependents_of
        ]
        return _assemble(graph, forward)


def build_dependency_graph(
    form: Form,
    *,
    reference_suffixes: Sequence[str] = DEFAULT_REFERENCE_SUFFIXES,
) -> DependencyGraph:
    """Build the graph from engine tracking, falling back to expression text.

    The fallback runs only when engine tracking produced no edges although
    the form has rules.
    """
    graph = EngineGraphBuilder().build(form)
    if not graph.is_empty() or graph.total_rules == 0:
        return graph

    logger.info(
        "Engine recorded no dependencies for %d rule(s), using expression references",
        graph.total_rules,
    )
    return ExpressionGraphBuilder(reference_suffixes).build(form)


__all__ = [
    "DEFAULT_REFERENCE_SUFFIXES",
    "DependencyGraph",
    "DependencyNode",
    "EngineGraphBuilder",
    "ExpressionGraphBuilder",
    "GraphBuilder",
    "build_dependency_graph",
]
