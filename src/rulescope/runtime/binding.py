"""Data binding of form nodes and the diagnostics it emits."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from rulescope.runtime.model import FormNode

logger = logging.getLogger(__name__)

_SEGMENT = r"[A-Za-z_][\w-]*(?:\[\d+\])*"
DATA_REF_PATTERN = re.compile(rf"^(?:\$(?:\.{_SEGMENT})*|{_SEGMENT}(?:\.{_SEGMENT})*)$")

ROOT_PATH = "$"


@dataclass(frozen=True)
class BindingContext:
    """Binding inherited by a node's children."""

    path: str = ROOT_PATH
    under_null: bool = False


def is_valid_data_ref(ref: object) -> bool:
    return isinstance(ref, str) and DATA_REF_PATTERN.match(ref) is not None


def _join(base: str, relative: str) -> str:
    return f"{base}.{relative}"


class DataBinder:
    """Resolves each node's data path and reports binding problems.

    Problems are reported on this module's logger: unparsable references at
    error level, type conflicts between fields sharing a path at warning level.
    When a ``diagnostics`` handler is given, every problem is also handed to it
    directly, whatever the logging configuration.
    """

    def __init__(self, diagnostics: logging.Handler | None = None) -> None:
        self._bound: dict[str, list[tuple[str, str]]] = {}
        self._diagnostics = diagnostics

    def _report(self, level: int, msg: str, *args: Any) -> None:
        logger.log(level, msg, *args)
        if self._diagnostics is not None:
            record = logger.makeRecord(logger.name, level, __file__, 0, msg, args, None)
            self._diagnostics.handle(record)

    def _report_data_ref(self, ref: object, node: FormNode) -> None:
        self._report(
            logging.ERROR, 'Error parsing dataRef "%s" for field "%s"', ref, node.id
        )

    def _register(self, path: str, node: FormNode) -> None:
        name = node.name or node.id
        existing = self._bound.setdefault(path, [])
        conflicts = [
            (other, data_type)
            for other, data_type in existing
            if data_type != node.data_type
        ]
        if conflicts:
            listed = ", ".join(
                f"{other} ({data_type})" for other, data_type in conflicts
            )
            self._report(
                logging.WARNING,
                "Type conflict detected: New field '%s' (%s) conflicts with: %s. "
                "DataRef: %s",
                name,
                node.data_type,
                listed,
                path,
            )
        existing.append((name, node.data_type))

    def bind(
        self, node: FormNode, context: BindingContext, *, register: bool = True
    ) -> BindingContext:
        """Set ``node.binding_path`` and return the context for its children."""
        node.binding_path = None

        if node.data_ref_declared:
            ref = node.data_ref
            if ref is None:
                return BindingContext(path=context.path, under_null=True)
            if not is_valid_data_ref(ref):
                self._report_data_ref(ref, node)
                return context
            ref = cast("str", ref)
            absolute = ref.startswith(ROOT_PATH)
            if not absolute and context.under_null:
                self._report_data_ref(ref, node)
                return context
            path = ref if absolute else _join(context.path, ref)
        elif node.name and not context.under_null:
            path = _join(context.path, node.name)
        else:
            return context

        if node.is_value_field:
            node.binding_path = path
            if register:
                self._register(path, node)
            return context
        if not node.is_container:
            return context
        node.binding_path = path
        return BindingContext(path=path)


__all__ = [
    "DATA_REF_PATTERN",
    "ROOT_PATH",
    "BindingContext",
    "DataBinder",
    "is_valid_data_ref",
]
