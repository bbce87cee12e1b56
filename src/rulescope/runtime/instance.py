"""Form instantiation: materialize the tree, bind data and run the first pass."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rulescope.runtime.binding import BindingContext, DataBinder
from rulescope.runtime.events import EventQueue
from rulescope.runtime.model import Form, FormNode
from rulescope.runtime.rule_engine import RuleEngine
from rulescope.utils import iter_child_definitions

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_FORM_ID = "$form"


class FormBootstrapError(Exception):
    """Raised when a form definition cannot be turned into a live form."""


def _instance_count(definition: dict[str, Any]) -> int:
    if definition.get("repeatable") is not True:
        return 1
    min_occur = definition.get("minOccur", 1)
    if isinstance(min_occur, bool) or not isinstance(min_occur, int):
        return 1
    return max(min_occur, 0)


class _FormAssembler:
    def __init__(self, form: Form, binder: DataBinder) -> None:
        self.form = form
        self.binder = binder
        self._counter = 0
        self._seen_ids: set[str] = {form.id}

    def _generate_id(self, definition: dict[str, Any]) -> str:
        prefix = str(definition.get("fieldType") or "node")
        while True:
            self._counter += 1
            candidate = f"{prefix}-{self._counter}"
            if candidate not in self._seen_ids:
                return candidate

    def walk(
        self,
        definition: dict[str, Any],
        parent: FormNode,
        context: BindingContext,
        *,
        materialize: bool,
        suffix: str = "",
    ) -> None:
        for key, child in iter_child_definitions(definition):
            if not isinstance(child, dict):
                msg = f"Child {key!r} of {parent.id!r} is not an object"
                raise FormBootstrapError(msg)
            count = _instance_count(child)
            if count == 0:
                # Parsed for its diagnostics, never instantiated.
                self._attach(child, parent, context, materialize=False, suffix=suffix)
                continue
            for index in range(count):
                instance_suffix = suffix if index == 0 else f"{suffix}-{index}"
                self._attach(
                    child,
                    parent,
                    context,
                    materialize=materialize,
                    suffix=instance_suffix,
                )

    def _attach(
        self,
        definition: dict[str, Any],
        parent: FormNode,
        context: BindingContext,
        *,
        materialize: bool,
        suffix: str,
    ) -> None:
        raw_id = definition.get("id")
        if isinstance(raw_id, (str, int)) and str(raw_id):
            base_id = str(raw_id)
        else:
            base_id = self._generate_id(definition)
        node_id = base_id + suffix
        if materialize and self.form.has_element(node_id):
            msg = f"Duplicate field id: {node_id}"
            raise FormBootstrapError(msg)
        self._seen_ids.add(node_id)

        node = FormNode(definition, node_id=node_id, parent=parent, form=self.form)
        child_context = self.binder.bind(node, context, register=materialize)
        if materialize:
            parent.children.append(node)
            self.form.register(node)
        self.walk(
            definition, node, child_context, materialize=materialize, suffix=suffix
        )


def create_form_instance(
    definition: Any,
    functions: Mapping[str, Callable[..., Any]] | None = None,
    on_ready: Callable[[Form], Any] | None = None,
    *,
    diagnostics: logging.Handler | None = None,
) -> Form:
    """Build a live form from ``definition`` and settle its first evaluation pass.

    Every node gets ``initialize`` and then ``ExecuteRule`` queued; ``on_ready``
    is called with the form before the queue is drained. Binding diagnostics
    are handed to ``diagnostics`` when it is given.

    Raises:
        FormBootstrapError: When the root or a child is not an object, or two
            nodes share an id.
    """
    if not isinstance(definition, dict):
        msg = "Form definition must be an object"
        raise FormBootstrapError(msg)

    engine = RuleEngine(functions)
    queue = EventQueue()
    raw_id = definition.get("id")
    form = Form(
        definition,
        node_id=str(raw_id) if isinstance(raw_id, str) and raw_id else DEFAULT_FORM_ID,
        engine=engine,
        queue=queue,
    )
    assembler = _FormAssembler(form, DataBinder(diagnostics))
    assembler.walk(definition, form, BindingContext(), materialize=True)

    nodes = [form, *form.iter_nodes()]
    logger.debug("Materialized form %s with %d node(s)", form.id, len(nodes) - 1)
    for node in nodes:
        queue.queue(node, "initialize")
    for node in nodes:
        queue.queue(node, "ExecuteRule")
    if on_ready is not None:
        on_ready(form)
    try:
        dispatched = queue.run_pending()
    finally:
        engine.close()
    logger.debug("Initial pass dispatched %d event(s)", dispatched)
    return form


__all__ = ["DEFAULT_FORM_ID", "FormBootstrapError", "create_form_instance"]
