"""Inert stand-ins for the browser globals custom functions expect."""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from types import SimpleNamespace
from typing import Any

logger = logging.getLogger(__name__)


def _noop(*_args: Any, **_kwargs: Any) -> None:
    return None


def _inert_element(*_args: Any, **_kwargs: Any) -> SimpleNamespace:
    return SimpleNamespace(
        style=SimpleNamespace(),
        dataset={},
        classList=SimpleNamespace(add=_noop, remove=_noop, contains=lambda *_: False),
        setAttribute=_noop,
        getAttribute=lambda *_: None,
        appendChild=_noop,
        addEventListener=_noop,
        removeEventListener=_noop,
    )


def _make_document() -> SimpleNamespace:
    return SimpleNamespace(
        createElement=_inert_element,
        querySelector=lambda *_: None,
        querySelectorAll=lambda *_: [],
        getElementById=lambda *_: None,
        body=_inert_element(),
        head=_inert_element(),
        cookie="",
        addEventListener=_noop,
        removeEventListener=_noop,
    )


def _make_window(document: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(
        location=SimpleNamespace(href="", protocol="https:", search="", hash=""),
        navigator=SimpleNamespace(userAgent="rulescope"),
        document=document,
        localStorage=SimpleNamespace(
            getItem=lambda *_: None, setItem=_noop, removeItem=_noop
        ),
        sessionStorage=SimpleNamespace(
            getItem=lambda *_: None, setItem=_noop, removeItem=_noop
        ),
        addEventListener=_noop,
        removeEventListener=_noop,
        getComputedStyle=lambda *_: {},
        matchMedia=lambda *_: SimpleNamespace(matches=False),
    )


def _random_values(values: list[int] | int) -> list[int]:
    size = values if isinstance(values, int) else len(values)
    return [secrets.randbelow(256) for _ in range(size)]


def _make_crypto() -> SimpleNamespace:
    return SimpleNamespace(
        randomUUID=lambda: str(uuid.uuid4()),
        getRandomValues=_random_values,
        token_hex=secrets.token_hex,
    )


def _make_console(source_name: str) -> SimpleNamespace:
    def emit(level: int) -> Any:
        def _log(*args: Any) -> None:
            logger.log(
                level,
                " ".join(str(arg) for arg in args),
                extra={"function_source": source_name},
            )

        return _log

    return SimpleNamespace(
        log=emit(logging.DEBUG),
        debug=emit(logging.DEBUG),
        info=emit(logging.INFO),
        warn=emit(logging.WARNING),
        error=emit(logging.WARNING),
    )


def _make_performance() -> SimpleNamespace:
    return SimpleNamespace(now=lambda: time.perf_counter() * 1000.0)


def build_stub_globals(source_name: str = "functions.py") -> dict[str, Any]:
    """Return fresh stand-ins for ``document``, ``window``, ``crypto`` and friends.

    Every call builds new objects, so one load can never observe state left
    behind by another.
    """
    document = _make_document()
    return {
        "console": _make_console(source_name),
        "crypto": _make_crypto(),
        "document": document,
        "window": _make_window(document),
        "performance": _make_performance(),
    }


__all__ = ["build_stub_globals"]
