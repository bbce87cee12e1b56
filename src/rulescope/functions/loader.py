"""Loading of externally authored custom functions."""

from __future__ import annotations

import functools
import inspect
import logging
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

from rulescope.parse.treesitter_functions import prepare_function_source
from rulescope.sandbox.executor import Sandbox, SandboxError, SandboxTimeoutError
from rulescope.scan.files import find_file_by_suffix, normalize_source_path

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)


@dataclass
class FunctionFailure:
    count: int = 0
    errors: set[str] = field(default_factory=set)


class FailureTracker:
    """Per-function record of calls that raised or rejected."""

    def __init__(self) -> None:
        self._failures: dict[str, FunctionFailure] = {}

    def record(self, name: str, exc: BaseException) -> None:
        failure = self._failures.setdefault(name, FunctionFailure())
        failure.count += 1
        failure.errors.add(describe_error(exc))

    def get(self, name: str) -> FunctionFailure | None:
        return self._failures.get(name)

    def items(self) -> Iterator[tuple[str, FunctionFailure]]:
        yield from self._failures.items()

    def __len__(self) -> int:
        return len(self._failures)

    def __contains__(self, name: object) -> bool:
        return name in self._failures


def describe_error(exc: BaseException) -> str:
    """Serialize an exception as a stable JSON object of message, stack and name."""
    details = {
        "message": str(exc) or "Unknown error",
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "name": type(exc).__name__,
    }
    return orjson.dumps(details, option=orjson.OPT_SORT_KEYS).decode("utf-8")


async def _guard_awaitable(name: str, awaitable: Any, tracker: FailureTracker) -> Any:
    try:
        return await awaitable
    except Exception as exc:
        tracker.record(name, exc)
        return None


def wrap_safely(
    name: str, function: Callable[..., Any], tracker: FailureTracker
) -> Callable[..., Any]:
    """Wrap ``function`` so it never raises into its caller.

    Synchronous exceptions and failures of a returned awaitable are both
    recorded in ``tracker`` under ``name`` and replaced with ``None``.
    """

    @functools.wraps(function)
    def safe_function(*args: Any, **kwargs: Any) -> Any:
        try:
            result = function(*args, **kwargs)
        except Exception as exc:
            tracker.record(name, exc)
            return None
        if inspect.isawaitable(result):
            return _guard_awaitable(name, result, tracker)
        return result

    return safe_function


@dataclass
class LoadedFunctions:
    """Result of loading one custom function source file."""

    functions: dict[str, Callable[..., Any]]
    failure_tracker: FailureTracker
    file_path: str

    @property
    def count(self) -> int:
        return len(self.functions)


class CustomFunctionLoader:
    """Resolve, sandbox and wrap the custom functions a form refers to."""

    def __init__(
        self,
        workspace_root: Path,
        *,
        timeout_seconds: float = 10.0,
        search_max_depth: int = 5,
        skip_dirs: Iterable[str] = (),
    ) -> None:
        self.workspace_root = workspace_root
        self.timeout_seconds = timeout_seconds
        self.search_max_depth = search_max_depth
        self.skip_dirs = tuple(skip_dirs)

    def resolve(self, source_path: str) -> Path | None:
        """Locate the function source, falling back to a suffix search."""
        normalized = normalize_source_path(source_path)
        if not normalized:
            return None

        candidate = self.workspace_root / normalized
        if candidate.is_file():
            return candidate

        logger.info(
            "Custom functions file not found at %s, searching for %s",
            candidate,
            normalized,
        )
        found = find_file_by_suffix(
            self.workspace_root,
            normalized,
            max_depth=self.search_max_depth,
            skip_dirs=self.skip_dirs,
        )
        if found is None:
            logger.info("Custom functions file not found: %s", normalized)
        else:
            logger.info("Found custom functions at %s", found)
        return found

    def _relative_path(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.workspace_root.resolve()).as_posix()
        except (OSError, ValueError):
            return path.as_posix()

    def load(self, source_path: str | None) -> LoadedFunctions | None:
        """Load the functions defined in ``source_path``.

        Returns None when no path is given, the file cannot be found or read,
        or the source fails while its functions are being defined. None means
        the caller should rely on mock functions only.
        """
        if not source_path:
            return None

        path = self.resolve(source_path)
        if path is None:
            return None

        try:
            source_bytes = path.read_bytes()
        except OSError as exc:
            logger.warning("Could not read custom functions %s: %s", path, exc)
            return None

        prepared = prepare_function_source(source_bytes)
        logger.info(
            "Loading custom functions from %s",
            path,
            extra={
                "exported_names": list(prepared.exported_names),
                "stripped_statements": prepared.stripped_statements,
            },
        )

        sandbox = Sandbox(timeout_seconds=self.timeout_seconds, filename=path.name)
        try:
            sandbox.run(prepared.source)
        except SandboxTimeoutError as exc:
            logger.warning("Custom functions timed out while loading: %s", exc)
            return None
        except SandboxError as exc:
            logger.warning("Could not load custom functions: %s", exc)
            return None

        tracker = FailureTracker()
        functions = {
            name: wrap_safely(name, function, tracker)
            for name, function in sandbox.exported(prepared.exported_names).items()
        }
        logger.info("Successfully loaded %d real function(s)", len(functions))

        return LoadedFunctions(
            functions=functions,
            failure_tracker=tracker,
            file_path=self._relative_path(path),
        )


__all__ = [
    "CustomFunctionLoader",
    "FailureTracker",
    "FunctionFailure",
    "LoadedFunctions",
    "describe_error",
    "wrap_safely",
]
