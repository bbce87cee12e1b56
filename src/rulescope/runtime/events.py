"""FIFO event queue driving rule execution."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rulescope.runtime.model import FormNode

logger = logging.getLogger(__name__)

MAX_RUNS_PER_EVENT = 10


class EventQueue:
    """Queue of ``(node, event)`` work items.

    Each pair runs at most ``max_runs`` times per drain, which bounds the
    re-execution a cyclic rule network can cause.
    """

    def __init__(self, *, max_runs: int = MAX_RUNS_PER_EVENT) -> None:
        self.max_runs = max_runs
        self._pending: deque[tuple[FormNode, str, Any]] = deque()
        self._runs: dict[tuple[str, str], int] = {}
        self._draining = False

    def __len__(self) -> int:
        return len(self._pending)

    def queue(self, node: FormNode, event_name: str, payload: Any = None) -> None:
        self._pending.append((node, event_name, payload))

    def run_pending(self) -> int:
        """Dispatch queued events until the queue is empty; return how many ran."""
        if self._draining:
            return 0
        self._draining = True
        dispatched = 0
        try:
            while self._pending:
                node, event_name, payload = self._pending.popleft()
                key = (node.id, event_name)
                runs = self._runs.get(key, 0)
                if runs >= self.max_runs:
                    logger.debug(
                        "Dropping %s on %s after %d runs", event_name, node.id, runs
                    )
                    continue
                self._runs[key] = runs + 1
                node.form.dispatch(node, event_name, payload)
                dispatched += 1
        finally:
            self._draining = False
            self._runs.clear()
        return dispatched


__all__ = ["MAX_RUNS_PER_EVENT", "EventQueue"]
