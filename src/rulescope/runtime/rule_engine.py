"""Rule evaluation with dependency tracking."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

from rulescope.runtime.expressions import (
    DOLLAR_PREFIX,
    ExpressionProgram,
    UnsafeExpressionError,
    compile_expression,
)
from rulescope.runtime.functions import (
    NULL_SAFE_OPERATORS,
    PURE_FUNCTIONS,
    null_tolerant,
    python_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from rulescope.runtime.model import FormNode

logger = logging.getLogger(__name__)


class _Unresolved:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __bool__(self) -> bool:
        return False


UNRESOLVED: Any = _Unresolved()


class FieldProxy:
    """Expression-side view of a node.

    ``.$<property>`` reads (``dollar_<property>`` after translation) return
    the property value and record a dependency; any other attribute resolves
    a named child.
    """

    __slots__ = ("_engine", "_node")

    def __init__(self, engine: RuleEngine, node: FormNode) -> None:
        self._engine = engine
        self._node = node

    def __getattr__(self, attr: str) -> Any:
        if attr.startswith("__"):
            raise AttributeError(attr)
        if attr.startswith(DOLLAR_PREFIX):
            property_name = attr[len(DOLLAR_PREFIX) :]
            self._engine.track_dependency(self._node, property_name)
            return self._node.get_property(property_name)
        child = self._lookup(attr)
        if child is None:
            raise AttributeError(attr)
        return FieldProxy(self._engine, child)

    def _lookup(self, name: str) -> FormNode | None:
        return self._node.child_named(name)

    def __repr__(self) -> str:
        return f"FieldProxy({self._node.id!r})"


class FormProxy(FieldProxy):
    """``$form``: resolves any named field in the tree."""

    __slots__ = ()

    def _lookup(self, name: str) -> FormNode | None:
        found = self._node.form.find_by_name(name)
        if found is not None:
            self._engine.track_dependency(found, "")
        return found


def node_of(target: Any) -> FormNode | None:
    if isinstance(target, FieldProxy):
        return object.__getattribute__(target, "_node")
    return None


class RuleScope(Mapping[str, Any]):
    """Name resolution for one expression evaluation."""

    def __init__(
        self, engine: RuleEngine, node: FormNode, globals_: dict[str, Any]
    ) -> None:
        self._engine = engine
        self._node = node
        self._globals = globals_

    def __getitem__(self, name: str) -> Any:
        if name == "dollar_form":
            return FormProxy(self._engine, self._node.form)
        if name == "dollar_field":
            return FieldProxy(self._engine, self._node)
        if name == "dollar_event":
            event = self._globals.get("$event") or {}
            return SimpleNamespace(
                type=event.get("type"),
                payload=event.get("payload"),
                target=FieldProxy(self._engine, self._node),
            )
        if name.startswith(DOLLAR_PREFIX):
            key = "$" + name[len(DOLLAR_PREFIX) :]
            if key in self._globals:
                return self._globals[key]
            raise KeyError(name)
        target = self._node.form.resolve_name(self._node, name)
        if target is None:
            raise KeyError(name)
        return FieldProxy(self._engine, target)

    def __iter__(self) -> Iterator[str]:
        return iter(())

    def __len__(self) -> int:
        return 0


def _set_property(target: Any, properties: Any) -> None:
    node = node_of(target)
    if node is None or not isinstance(properties, dict):
        return
    for property_name, value in properties.items():
        node.set_property(str(property_name), value)


def _dispatch_event(target: Any, event_name: Any, payload: Any = None) -> None:
    node = node_of(target)
    if node is None or not isinstance(event_name, str):
        return
    node.form.event_queue.queue(node, event_name, payload)


class RuleEngine:
    """Evaluates rule and event expressions for one form instance.

    ``execute`` is looked up on the class for every evaluation, so it can be
    replaced at class level to observe all evaluations.
    """

    def __init__(
        self, functions: Mapping[str, Callable[..., Any]] | None = None
    ) -> None:
        self._programs: dict[str, ExpressionProgram | UnsafeExpressionError] = {}
        self._tracking: list[FormNode] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self.function_names = tuple(functions or ())
        self._eval_globals: dict[str, Any] = {"__builtins__": {}}
        for name, function in PURE_FUNCTIONS.items():
            self._eval_globals[python_name(name)] = null_tolerant(function)
        self._eval_globals.update(NULL_SAFE_OPERATORS)
        self._eval_globals["setProperty"] = _set_property
        self._eval_globals["dispatchEvent"] = _dispatch_event
        for name, function in (functions or {}).items():
            self._eval_globals[name] = self._settling(function)

    def _settling(self, function: Callable[..., Any]) -> Callable[..., Any]:
        def call(*args: Any) -> Any:
            return self.settle(function(*args))

        return call

    def settle(self, result: Any) -> Any:
        """Resolve an awaitable result on this engine's private event loop.

        When the calling thread is already running an event loop, the private
        loop runs in a worker thread and this call blocks until it resolves.
        """
        if not inspect.isawaitable(result):
            return result

        async def _await() -> Any:
            return await result

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return self._private_loop().run_until_complete(_await())
        future = asyncio.run_coroutine_threadsafe(_await(), self._threaded_loop())
        return future.result()

    def _private_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop_thread is not None:
            self.close()
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _threaded_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None and self._loop_thread is not None:
            return self._loop
        self.close()
        loop = asyncio.new_event_loop()
        thread = threading.Thread(
            target=loop.run_forever,
            name="rulescope-settle",
            daemon=True,
        )
        thread.start()
        self._loop = loop
        self._loop_thread = thread
        return loop

    def close(self) -> None:
        loop, thread = self._loop, self._loop_thread
        self._loop = None
        self._loop_thread = None
        if loop is None or loop.is_closed():
            return
        if thread is not None:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
        loop.close()

    @contextmanager
    def tracking(self, node: FormNode) -> Iterator[None]:
        """Record ``node`` as the dependent of every property read in the block."""
        self._tracking.append(node)
        try:
            yield
        finally:
            self._tracking.pop()

    def track_dependency(self, source: FormNode, property_name: str) -> None:
        if self._tracking:
            source.add_dependent(self._tracking[-1], property_name)

    def compile(self, expression: str) -> ExpressionProgram:
        cached = self._programs.get(expression)
        if cached is None:
            try:
                cached = compile_expression(expression)
            except UnsafeExpressionError as exc:
                logger.warning("Unsupported expression %r: %s", expression, exc)
                cached = exc
            self._programs[expression] = cached
        if isinstance(cached, UnsafeExpressionError):
            raise cached
        return cached

    @staticmethod
    def is_unresolved(result: Any) -> bool:
        return result is UNRESOLVED

    def execute(self, node: FormNode, expression: str, globals_: dict[str, Any]) -> Any:
        """Evaluate ``expression`` in the scope of ``node``.

        Returns ``UNRESOLVED`` instead of raising when the expression cannot
        be compiled or fails while evaluating.
        """
        try:
            program = self.compile(expression)
        except UnsafeExpressionError:
            return UNRESOLVED
        scope = RuleScope(self, node, globals_)
        try:
            return eval(program.code, self._eval_globals, scope)  # noqa: S307
        except Exception as exc:
            logger.debug(
                "Expression on %s failed: %s: %s",
                node.id,
                type(exc).__name__,
                exc,
                extra={"field_id": node.id, "expression": expression},
            )
            return UNRESOLVED


__all__ = [
    "UNRESOLVED",
    "FieldProxy",
    "FormProxy",
    "RuleEngine",
    "RuleScope",
    "node_of",
]
