"""Timing of every rule evaluation through the shared engine entrypoint."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rulescope.runtime.rule_engine import RuleEngine
from rulescope.utils import truncate

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from rulescope.runtime.model import FormNode

logger = logging.getLogger(__name__)

# The entrypoint is process-wide; overlapping profilers would wrap each other.
_PATCH_LOCK = threading.RLock()

UNKNOWN = "unknown"


@dataclass(frozen=True)
class SlowRuleRecord:
    field: str
    expression: str
    duration_ms: float
    event: str


def _field_name(globals_: dict[str, Any]) -> str:
    node = globals_.get("field")
    name = getattr(node, "name", None) or getattr(node, "id", None)
    return str(name) if name else UNKNOWN


def _event_type(globals_: dict[str, Any]) -> str:
    event = globals_.get("$event")
    if isinstance(event, dict) and event.get("type"):
        return str(event["type"])
    return UNKNOWN


class RuleProfiler:
    """Context manager that times each ``RuleEngine.execute`` call.

    While active, the class-level entrypoint is replaced with a timing wrapper;
    the original is restored on exit even when the block raises. Evaluations
    slower than ``threshold_ms`` are kept as :class:`SlowRuleRecord` entries.
    """

    def __init__(
        self,
        *,
        threshold_ms: float = 50.0,
        preview_chars: int = 150,
        engine_class: type[RuleEngine] = RuleEngine,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.threshold_ms = threshold_ms
        self.preview_chars = preview_chars
        self.engine_class = engine_class
        self.clock = clock
        self.records: list[SlowRuleRecord] = []
        self.execution_counts: Counter[str] = Counter()
        self._original: Any = None

    def _record(
        self, globals_: dict[str, Any], expression: str, elapsed_ms: float
    ) -> None:
        field = _field_name(globals_)
        preview = truncate(str(expression), self.preview_chars)
        self.execution_counts[f"{field}:{preview}"] += 1
        if elapsed_ms > self.threshold_ms:
            self.records.append(
                SlowRuleRecord(
                    field=field,
                    expression=preview,
                    duration_ms=round(elapsed_ms, 1),
                    event=_event_type(globals_),
                )
            )

    def __enter__(self) -> RuleProfiler:
        _PATCH_LOCK.acquire()
        try:
            original = self.engine_class.__dict__["execute"]
        except KeyError:
            _PATCH_LOCK.release()
            raise
        self._original = original
        profiler = self

        def execute(
            engine: RuleEngine,
            node: FormNode,
            expression: str,
            globals_: dict[str, Any],
        ) -> Any:
            start = profiler.clock()
            try:
                return original(engine, node, expression, globals_)
            finally:
                elapsed_ms = (profiler.clock() - start) * 1000.0
                profiler._record(globals_, expression, elapsed_ms)

        self.engine_class.execute = execute  # type: ignore[method-assign]
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.engine_class.execute = self._original  # type: ignore[method-assign]
        finally:
            self._original = None
            _PATCH_LOCK.release()

    @property
    def slow_rule_count(self) -> int:
        return len(self.records)

    def top(self, limit: int = 10) -> list[SlowRuleRecord]:
        """Return the ``limit`` slowest records, slowest first."""
        ranked = sorted(
            self.records, key=lambda record: record.duration_ms, reverse=True
        )
        return ranked[: max(limit, 0)]

    def log_summary(self, limit: int = 3) -> None:
        if not self.records:
            logger.info("No rules exceeded %.1fms", self.threshold_ms)
            return
        logger.warning(
            "%d rule evaluation(s) exceeded %.1fms",
            len(self.records),
            self.threshold_ms,
        )
        for record in self.top(limit):
            logger.warning(
                "Slow rule on %s (%s): %.1fms",
                record.field,
                record.event,
                record.duration_ms,
                extra={"expression": record.expression},
            )
        for key, count in self.execution_counts.most_common(limit):
            logger.debug("Rule %s executed %d time(s)", key, count)


__all__ = ["RuleProfiler", "SlowRuleRecord"]
