"""Dependency graph construction and cycle detection."""

from rulescope.graph.algos import Cycle, cycle_key, find_cycles
from rulescope.graph.builders import (
    DependencyGraph,
    DependencyNode,
    EngineGraphBuilder,
    ExpressionGraphBuilder,
    build_dependency_graph,
)

__all__ = [
    "Cycle",
    "DependencyGraph",
    "DependencyNode",
    "EngineGraphBuilder",
    "ExpressionGraphBuilder",
    "build_dependency_graph",
    "cycle_key",
    "find_cycles",
]
