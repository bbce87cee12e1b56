"""Rule dependency, cycle and performance analysis of a form definition."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

from rulescope.config import RuleScopeConfig
from rulescope.diagnostics.capture import DiagnosticBuffer
from rulescope.diagnostics.resolver import resolve_diagnostics
from rulescope.functions.loader import CustomFunctionLoader
from rulescope.functions.mocks import build_function_table, extract_function_names
from rulescope.graph.algos import find_cycles
from rulescope.graph.builders import build_dependency_graph
from rulescope.models.report import (
    AnalysisReport,
    CircularDependency,
    ComparisonDelta,
    ComparisonReport,
    CycleDetail,
    DependencyEntry,
    Issue,
    RuntimeErrorRecord,
    SlowRule,
)
from rulescope.profiling.profiler import RuleProfiler
from rulescope.runtime.instance import create_form_instance
from rulescope.utils import has_child_definitions

if TYPE_CHECKING:
    from rulescope.functions.loader import LoadedFunctions
    from rulescope.graph.algos import Cycle
    from rulescope.runtime.model import Form

logger = logging.getLogger(__name__)

FORM_COMPONENT_TYPE = "fd/franklin/components/form/v1/form"
MAX_LOGGED_FAILURES = 5


class InputError(ValueError):
    """Raised when the form input cannot be used at all."""


def coerce_form_json(form_json: Any) -> dict[str, Any]:
    """Accept a mapping or JSON text and return the form definition mapping.

    Raises:
        InputError: When nothing was provided, the text is not JSON, or the
            value is not an object.
    """
    if form_json is None or form_json == "":
        msg = "No form JSON provided"
        raise InputError(msg)
    if isinstance(form_json, (str, bytes)):
        try:
            form_json = orjson.loads(form_json)
        except orjson.JSONDecodeError as exc:
            msg = "Invalid form JSON: Unable to parse"
            raise InputError(msg) from exc
    if not isinstance(form_json, dict):
        msg = "Form JSON must be an object"
        raise InputError(msg)
    return form_json


def _structure_skip_reason(form_json: dict[str, Any]) -> str | None:
    has_items = has_child_definitions(form_json)
    has_form_properties = (
        form_json.get("fieldType") == "form"
        or form_json.get(":type") == FORM_COMPONENT_TYPE
    )
    if not has_items and not has_form_properties:
        return "Form JSON structure not recognized - missing :items or items"
    if not has_items:
        return "Form has no items to analyze"
    return None


def _cycle_message(cycle: Cycle) -> str:
    return f"Circular dependency detected: {' → '.join(cycle.fields)}"


def _custom_functions_path(form_json: dict[str, Any]) -> str | None:
    properties = form_json.get("properties")
    if isinstance(properties, dict):
        path = properties.get("customFunctionsPath")
        if isinstance(path, str) and path:
            return path
    return None


def _log_function_failures(loaded: LoadedFunctions) -> None:
    tracker = loaded.failure_tracker
    if not len(tracker):
        return
    logger.info("%d custom function(s) raised during rule execution", len(tracker))
    for index, (name, failure) in enumerate(tracker.items()):
        if index >= MAX_LOGGED_FAILURES:
            logger.info(
                "... and %d more function(s) with errors",
                len(tracker) - MAX_LOGGED_FAILURES,
            )
            break
        logger.info(
            "%s(): %d error(s)", name, failure.count, extra={"function_name": name}
        )


def _runtime_errors(loaded: LoadedFunctions | None) -> list[RuntimeErrorRecord]:
    if loaded is None:
        return []
    return [
        RuntimeErrorRecord.for_function(
            name,
            file=loaded.file_path,
            errors=sorted(failure.errors),
            error_count=failure.count,
        )
        for name, failure in loaded.failure_tracker.items()
    ]


class RuleAnalyzer:
    """Analyzes a form definition for rule cycles, slow rules and binding errors."""

    def __init__(
        self,
        config: RuleScopeConfig | None = None,
        *,
        workspace_root: Path | None = None,
        threshold_ms: float | None = None,
    ) -> None:
        self.config = config or RuleScopeConfig()
        base = workspace_root if workspace_root is not None else Path.cwd()
        self.workspace_root = self.config.resolve_workspace_root(base)
        if threshold_ms is None:
            threshold_ms = self.config.profiling.slow_rule_threshold_ms
        self.threshold_ms = threshold_ms
        sandbox = self.config.sandbox
        self.loader = CustomFunctionLoader(
            self.workspace_root,
            timeout_seconds=sandbox.load_timeout_seconds,
            search_max_depth=sandbox.search_max_depth,
            skip_dirs=sandbox.skip_dirs,
        )

    def analyze(self, form_json: Any) -> AnalysisReport:
        """Run the analysis. Never raises; problems are reported on the result."""
        try:
            definition = coerce_form_json(form_json)
        except InputError as exc:
            return AnalysisReport(error=str(exc))

        skip_reason = _structure_skip_reason(definition)
        if skip_reason is not None:
            logger.info("Skipping analysis: %s", skip_reason)
            return AnalysisReport(skipped=True, skip_reason=skip_reason)

        try:
            return self._analyze(definition)
        except Exception as exc:
            logger.exception("Rule analysis failed")
            return AnalysisReport(skipped=True, skip_reason=f"Analysis error: {exc}")

    def _analyze(self, definition: dict[str, Any]) -> AnalysisReport:
        loaded = self.loader.load(_custom_functions_path(definition))
        referenced = extract_function_names(definition)
        table = build_function_table(loaded, referenced)
        logger.info(
            "Detected %d function(s) in form, registered %d real + %d mock",
            len(referenced),
            table.real_count,
            table.mock_count,
        )

        profiling = self.config.profiling
        profiler = RuleProfiler(
            threshold_ms=self.threshold_ms,
            preview_chars=profiling.expression_preview_chars,
        )
        form: Form | None = None
        diagnostics = DiagnosticBuffer()
        try:
            with profiler:
                form = create_form_instance(
                    definition, table.callables(), diagnostics=diagnostics
                )
        except Exception as exc:
            logger.error("Failed to create form instance: %s", exc)
            return AnalysisReport(
                skipped=True,
                skip_reason=f"Unable to analyze form structure: {exc}",
            )

        try:
            if loaded is not None:
                _log_function_failures(loaded)

            graph = build_dependency_graph(
                form, reference_suffixes=self.config.graph.reference_suffixes
            )
            logger.info(
                "Found %d rule(s) in %d field(s)",
                graph.total_rules,
                graph.fields_with_rules,
                extra={"graph_strategy": graph.strategy},
            )

            cycles = find_cycles(graph)
            if cycles:
                logger.warning(
                    "Detected %d circular %s in rules",
                    len(cycles),
                    "dependency" if len(cycles) == 1 else "dependencies",
                )

            profiler.log_summary()
            slow_rules = [
                SlowRule(
                    field=record.field,
                    expression=record.expression,
                    duration_ms=record.duration_ms,
                    event=record.event,
                )
                for record in profiler.top(profiling.max_reported_slow_rules)
            ]

            runtime_errors = _runtime_errors(loaded)
            validation_errors = resolve_diagnostics(diagnostics, form)
        finally:
            form.close()

        return AnalysisReport(
            total_rules=graph.total_rules,
            fields_with_rules=graph.fields_with_rules,
            dependencies={
                name: DependencyEntry(
                    id=node.id, dependents=node.dependents, depends_on=node.depends_on
                )
                for name, node in graph.dependencies.items()
            },
            cycles=len(cycles),
            cycle_details=[
                CycleDetail(key=cycle.key, fields=cycle.fields, path=cycle.path)
                for cycle in cycles
            ],
            issues=[
                Issue(
                    message=_cycle_message(cycle), fields=cycle.fields, path=cycle.path
                )
                for cycle in cycles
            ],
            circular_dependencies=[
                CircularDependency(cycle=cycle.fields, fields=cycle.fields)
                for cycle in cycles
            ],
            slow_rules=slow_rules,
            slow_rule_count=profiler.slow_rule_count,
            runtime_errors=runtime_errors,
            runtime_error_count=len(runtime_errors),
            validation_errors=validation_errors,
            validation_error_count=validation_errors.count,
            graph_strategy=graph.strategy,
        )


def compare_reports(before: AnalysisReport, after: AnalysisReport) -> ComparisonReport:
    """Describe how the rule health of a form changed between two analyses."""
    before_keys = {cycle.key for cycle in before.cycle_details}
    after_keys = {cycle.key for cycle in after.cycle_details}
    return ComparisonReport(
        delta=ComparisonDelta(
            cycles=after.cycles - before.cycles,
            total_rules=after.total_rules - before.total_rules,
            slow_rules=after.slow_rule_count - before.slow_rule_count,
        ),
        new_cycles=[
            cycle for cycle in after.cycle_details if cycle.key not in before_keys
        ],
        resolved_cycles=[
            cycle for cycle in before.cycle_details if cycle.key not in after_keys
        ],
        slow_rules=list(after.slow_rules),
        slow_rule_count=after.slow_rule_count,
    )


def analyze(
    form_json: Any,
    *,
    config: RuleScopeConfig | None = None,
    workspace_root: Path | None = None,
) -> AnalysisReport:
    """Convenience wrapper around :meth:`RuleAnalyzer.analyze`."""
    return RuleAnalyzer(config, workspace_root=workspace_root).analyze(form_json)


__all__ = [
    "FORM_COMPONENT_TYPE",
    "InputError",
    "RuleAnalyzer",
    "analyze",
    "coerce_form_json",
    "compare_reports",
]
