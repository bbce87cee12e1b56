"""Live form tree: nodes, their state properties and dependents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

from rulescope.utils import has_child_definitions

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from rulescope.runtime.events import EventQueue
    from rulescope.runtime.rule_engine import RuleEngine

CONTAINER_TYPES = frozenset({"form", "panel"})
NON_VALUE_TYPES = frozenset({"form", "panel", "button", "plain-text", "image"})

_FIELD_TYPE_DATA_TYPES = {
    "number-input": "number",
    "checkbox": "boolean",
}

# Read-only attributes exposed through ``.$<name>`` alongside state properties.
_IDENTITY_PROPERTIES = ("id", "name", "fieldType", "type", "dataRef", "qualifiedName")


class Dependent(NamedTuple):
    """A node whose rules read ``property_name`` of the owning node.

    An empty ``property_name`` marks a structural reference (a ``$form``
    lookup) that records the edge without subscribing to changes.
    """

    node: FormNode
    property_name: str


def infer_data_type(definition: dict[str, Any]) -> str:
    declared = definition.get("type")
    if isinstance(declared, str) and declared:
        return declared
    return _FIELD_TYPE_DATA_TYPES.get(str(definition.get("fieldType") or ""), "string")


def _normalize_rules(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    rules: dict[str, str] = {}
    for key, rule in raw.items():
        expression = rule.get("expression") if isinstance(rule, dict) else rule
        if isinstance(expression, str) and expression.strip():
            # "label.value" style keys target the owning property.
            rules[str(key).split(".", 1)[0]] = expression
    return rules


def _normalize_events(raw: Any) -> dict[str, list[str]]:
    if not isinstance(raw, dict):
        return {}
    events: dict[str, list[str]] = {}
    for name, handlers in raw.items():
        items = handlers if isinstance(handlers, list) else [handlers]
        expressions = [item for item in items if isinstance(item, str) and item.strip()]
        if expressions:
            events[str(name)] = expressions
    return events


class FormNode:
    """One field, panel or the form root in a live form tree."""

    def __init__(
        self,
        definition: dict[str, Any],
        *,
        node_id: str,
        parent: FormNode | None,
        form: Form | None,
    ) -> None:
        self.id = node_id
        self.json_model = definition
        name = definition.get("name")
        self.name: str | None = name if isinstance(name, str) and name else None
        self.field_type: str = str(definition.get("fieldType") or "")
        self.data_type = infer_data_type(definition)
        self.data_ref_declared = "dataRef" in definition
        self.data_ref: Any = definition.get("dataRef")
        self.rules = _normalize_rules(definition.get("rules"))
        self.events = _normalize_events(definition.get("events"))
        self.parent = parent
        self.form: Form = form if form is not None else self  # type: ignore[assignment]
        self.children: list[FormNode] = []
        self._declares_children = has_child_definitions(definition)
        self.binding_path: str | None = None
        self._dependents: list[Dependent] = []

        label = definition.get("label")
        properties = definition.get("properties")
        self._state: dict[str, Any] = {
            "value": definition.get("value", definition.get("default")),
            "visible": definition.get("visible", True),
            "enabled": definition.get("enabled", True),
            "readOnly": definition.get("readOnly", False),
            "required": definition.get("required", False),
            "valid": True,
            "label": label.get("value") if isinstance(label, dict) else label,
            "properties": dict(properties) if isinstance(properties, dict) else {},
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r})"

    @property
    def is_container(self) -> bool:
        return (
            self.field_type in CONTAINER_TYPES
            or self._declares_children
            or bool(self.children)
        )

    @property
    def is_value_field(self) -> bool:
        return not self.is_container and self.field_type not in NON_VALUE_TYPES

    @property
    def qualified_name(self) -> str:
        names: list[str] = []
        node: FormNode | None = self
        while node is not None and node.parent is not None:
            if node.name:
                names.append(node.name)
            node = node.parent
        return ".".join(["$form", *reversed(names)])

    @property
    def dependents(self) -> tuple[Dependent, ...]:
        return tuple(self._dependents)

    def add_dependent(self, node: FormNode, property_name: str) -> None:
        entry = Dependent(node, property_name)
        if entry not in self._dependents:
            self._dependents.append(entry)

    def child_named(self, name: str) -> FormNode | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def get_property(self, property_name: str) -> Any:
        if property_name in _IDENTITY_PROPERTIES:
            return {
                "id": self.id,
                "name": self.name,
                "fieldType": self.field_type,
                "type": self.data_type,
                "dataRef": self.data_ref,
                "qualifiedName": self.qualified_name,
            }[property_name]
        return self._state.get(property_name)

    def set_property(self, property_name: str, value: Any) -> bool:
        """Update a state property and notify the form when it changed."""
        if property_name in _IDENTITY_PROPERTIES:
            return False
        if property_name in self._state and self._state[property_name] == value:
            return False
        self._state[property_name] = value
        self.form.property_changed(self, property_name)
        return True


class Form(FormNode):
    """Root of a live form tree, owning the engine, queue and element index."""

    def __init__(
        self,
        definition: dict[str, Any],
        *,
        node_id: str,
        engine: RuleEngine,
        queue: EventQueue,
    ) -> None:
        super().__init__(definition, node_id=node_id, parent=None, form=None)
        self.rule_engine = engine
        self.event_queue = queue
        self._index: dict[str, FormNode] = {node_id: self}
        self._by_name: dict[str, FormNode] = {}

    def register(self, node: FormNode) -> None:
        self._index[node.id] = node
        if node.name:
            self._by_name.setdefault(node.name, node)

    def has_element(self, node_id: str) -> bool:
        return node_id in self._index

    def get_element(self, node_id: str) -> FormNode | None:
        return self._index.get(node_id)

    def find_by_name(self, name: str) -> FormNode | None:
        return self._by_name.get(name)

    def resolve_name(self, origin: FormNode, name: str) -> FormNode | None:
        """Resolve a bare field name from ``origin``: siblings first, then outward."""
        scope = origin.parent
        while scope is not None:
            found = scope.child_named(name)
            if found is not None:
                return found
            scope = scope.parent
        return self.find_by_name(name)

    def iter_nodes(self) -> Iterator[FormNode]:
        """Yield every node pre-order, excluding the root."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def visit(self, callback: Callable[[FormNode], Any]) -> None:
        for node in self.iter_nodes():
            callback(node)

    def property_changed(self, node: FormNode, property_name: str) -> None:
        for dependent in node.dependents:
            if dependent.property_name == property_name:
                self.event_queue.queue(dependent.node, "ExecuteRule")
        if property_name == "value":
            self.event_queue.queue(node, "change")

    def dispatch(self, node: FormNode, event_name: str, payload: Any = None) -> None:
        """Run the handlers of ``event_name`` on ``node``."""
        engine = self.rule_engine
        globals_ = {"field": node, "$event": {"type": event_name, "payload": payload}}
        if event_name == "ExecuteRule":
            for property_name, expression in node.rules.items():
                with engine.tracking(node):
                    result = engine.execute(node, expression, globals_)
                if not engine.is_unresolved(result):
                    node.set_property(property_name, result)
            return
        for expression in node.events.get(event_name, ()):
            engine.execute(node, expression, globals_)

    def close(self) -> None:
        self.rule_engine.close()


__all__ = [
    "CONTAINER_TYPES",
    "NON_VALUE_TYPES",
    "Dependent",
    "Form",
    "FormNode",
    "infer_data_type",
]
