"""Isolated execution of custom function source."""

from __future__ import annotations

import ast
import builtins
import os
import subprocess
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rulescope.sandbox.stubs import build_stub_globals

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import CodeType, FrameType

# fmt: off
SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "callable", "chr", "dict", "divmod",
    "enumerate", "filter", "float", "format", "frozenset", "int",
    "isinstance", "issubclass", "iter", "len", "list", "map", "max", "min",
    "next", "object", "ord", "pow", "print", "range", "repr", "reversed",
    "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "staticmethod", "classmethod", "property", "super", "Exception",
    "ArithmeticError", "AssertionError", "AttributeError", "IndexError",
    "KeyError", "LookupError", "NameError", "RuntimeError", "StopIteration",
    "TypeError", "ValueError", "ZeroDivisionError", "NotImplementedError",
)

# Module-level names the source may read or assign.
ALLOWED_DUNDER_NAMES = frozenset({"__all__", "__name__"})
# Attribute reads needed by ordinary class bodies.
ALLOWED_DUNDER_ATTRIBUTES = frozenset({"__init__"})
# Frame, code and traceback handles reach the globals of the host modules.
INTROSPECTION_ATTRIBUTES = frozenset({
    "ag_await", "ag_code", "ag_frame", "cr_await", "cr_code", "cr_frame",
    "cr_origin", "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
    "gi_code", "gi_frame", "gi_yieldfrom", "tb_frame", "tb_next",
})
# fmt: on

CHILD_MODULE = "rulescope.sandbox.child"
_PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class SandboxError(Exception):
    """Raised when function source cannot be defined inside the sandbox."""


class SandboxTimeoutError(SandboxError):
    """Raised when defining function source exceeds the load timeout."""


def _is_dunder(name: str) -> bool:
    return name.startswith("__")


def _is_blocked_attribute(name: str) -> bool:
    if _is_dunder(name):
        return name not in ALLOWED_DUNDER_ATTRIBUTES
    return name in INTROSPECTION_ATTRIBUTES


def _validate_source(tree: ast.AST, filename: str) -> None:
    """Reject dunder and frame traversal out of the restricted namespace."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and _is_dunder(node.id):
            if node.id not in ALLOWED_DUNDER_NAMES:
                msg = f"{filename}:{node.lineno}: unsupported name {node.id}"
                raise SandboxError(msg)
        elif isinstance(node, ast.Attribute) and _is_blocked_attribute(node.attr):
            msg = f"{filename}:{node.lineno}: unsupported attribute {node.attr}"
            raise SandboxError(msg)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            if any(_is_dunder(name) for name in node.names):
                msg = f"{filename}:{node.lineno}: unsupported global declaration"
                raise SandboxError(msg)


def compile_source(source: str, filename: str) -> CodeType:
    """Parse, validate and compile function source.

    Raises:
        SandboxError: When the source does not parse or reaches for dunder
            names or attributes.
    """
    try:
        tree = ast.parse(source, filename=filename, mode="exec")
    except SyntaxError as exc:
        msg = f"Cannot parse {filename}: {exc}"
        raise SandboxError(msg) from exc
    _validate_source(tree, filename)
    return compile(tree, filename, "exec")


def _is_hidden(name: object) -> bool:
    return (
        not isinstance(name, str)
        or name.startswith("_")
        or name in INTROSPECTION_ATTRIBUTES
    )


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    if _is_hidden(name):
        raise AttributeError(name)
    return getattr(obj, name, *default)


def _safe_hasattr(obj: Any, name: str) -> bool:
    if _is_hidden(name):
        return False
    return hasattr(obj, name)


def _safe_builtins() -> dict[str, Any]:
    safe = {name: getattr(builtins, name) for name in SAFE_BUILTIN_NAMES}
    safe["getattr"] = _safe_getattr
    safe["hasattr"] = _safe_hasattr
    # Class statements compile to a __build_class__ call.
    safe["__build_class__"] = builtins.__build_class__
    return safe


@contextmanager
def _deadline(seconds: float, filename: str) -> Iterator[None]:
    """Interrupt Python code running in this thread once ``seconds`` elapse."""
    limit = time.monotonic() + seconds
    previous = sys.gettrace()

    def _tracer(frame: FrameType, event: str, arg: Any) -> Any:
        if time.monotonic() > limit:
            msg = f"Loading {filename} exceeded {seconds:g}s"
            raise SandboxTimeoutError(msg)
        return _tracer

    sys.settrace(_tracer)
    try:
        yield
    finally:
        sys.settrace(previous)


def _child_env() -> dict[str, str]:
    env = dict(os.environ)
    paths = [str(_PACKAGE_ROOT), env.get("PYTHONPATH", "")]
    env["PYTHONPATH"] = os.pathsep.join(path for path in paths if path)
    return env


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else "no error output"


class Sandbox:
    """Capability-scoped namespace for running third-party function source.

    The namespace has no import machinery, no file or network builtins, and
    only the inert browser stand-ins from :mod:`rulescope.sandbox.stubs`.
    Source reaching for dunder names or attributes is rejected before it runs.
    Definitions first run in a child process that is killed at the timeout;
    only source that finished there is executed in this process. Calls made
    later through the returned callables run without a time limit.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        filename: str = "functions.py",
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.filename = filename
        self.namespace: dict[str, Any] = {
            "__builtins__": _safe_builtins(),
            "__name__": "custom_functions",
            **build_stub_globals(filename),
        }

    def run(self, source: str) -> dict[str, Any]:
        """Execute ``source`` in the sandbox namespace and return the namespace.

        Raises:
            SandboxTimeoutError: When execution exceeds the timeout.
            SandboxError: When the source is rejected, fails to compile, or
                raises while defining its functions.
        """
        code = compile_source(source, self.filename)
        self.run_isolated(source)
        self.execute(code)
        return self.namespace

    def run_isolated(self, source: str) -> None:
        """Define the functions in a child process bounded by the timeout."""
        command = [sys.executable, "-m", CHILD_MODULE, self.filename]
        try:
            subprocess.run(
                command,
                input=source,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout_seconds,
                env=_child_env(),
            )
        except subprocess.TimeoutExpired as exc:
            msg = f"Loading {self.filename} exceeded {self.timeout_seconds:g}s"
            raise SandboxTimeoutError(msg) from exc
        except subprocess.CalledProcessError as exc:
            raise SandboxError(_last_line(exc.stderr or "")) from exc
        except OSError as exc:
            msg = f"Cannot start isolated load of {self.filename}: {exc}"
            raise SandboxError(msg) from exc

    def execute(self, code: CodeType) -> None:
        """Run compiled source in this process under the in-thread deadline."""
        try:
            with _deadline(self.timeout_seconds, self.filename):
                exec(code, self.namespace)  # noqa: S102
        except SandboxTimeoutError:
            raise
        except Exception as exc:
            msg = f"Executing {self.filename} failed: {type(exc).__name__}: {exc}"
            raise SandboxError(msg) from exc

    def exported(self, names: tuple[str, ...]) -> dict[str, Any]:
        """Return the callables among ``names`` defined in the namespace."""
        return {
            name: self.namespace[name]
            for name in names
            if callable(self.namespace.get(name))
        }


__all__ = [
    "SAFE_BUILTIN_NAMES",
    "Sandbox",
    "SandboxError",
    "SandboxTimeoutError",
    "compile_source",
]
