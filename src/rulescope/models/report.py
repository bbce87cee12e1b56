"""Analysis and comparison report models."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from rulescope.models.base import ReportModel
from rulescope.models.validation import ValidationErrors

CYCLE_RECOMMENDATION = (
    "Break the circular dependency by removing or modifying one of the rules. "
    "Circular dependencies can cause infinite loops and performance issues. "
    "Consider using events or consolidating the logic."
)

RUNTIME_ERROR_RECOMMENDATION = (
    'Function "{name}" throws errors during execution. '
    "Review function logic to handle missing or null values gracefully."
)


class DependencyEntry(ReportModel):
    id: str | None = None
    dependents: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)


class CycleDetail(ReportModel):
    key: str = Field(description="Sorted unique field names joined by '->'")
    fields: list[str]
    path: list[str]


class Issue(ReportModel):
    severity: Literal["error"] = "error"
    type: Literal["rule-cycle"] = "rule-cycle"
    message: str
    fields: list[str]
    path: list[str]
    recommendation: str = CYCLE_RECOMMENDATION


class CircularDependency(ReportModel):
    cycle: list[str]
    fields: list[str]


class SlowRule(ReportModel):
    field: str
    expression: str
    duration_ms: float
    event: str


class RuntimeErrorRecord(ReportModel):
    function_name: str
    file: str | None = None
    error_count: int
    errors: list[str] = Field(
        default_factory=list, description="Serialized {message, stack, name} objects"
    )
    severity: Literal["warning"] = "warning"
    type: Literal["runtime-error-in-custom-function"] = (
        "runtime-error-in-custom-function"
    )
    recommendation: str

    @classmethod
    def for_function(
        cls, name: str, *, file: str | None, errors: list[str], error_count: int
    ) -> RuntimeErrorRecord:
        return cls(
            function_name=name,
            file=file,
            error_count=error_count,
            errors=errors,
            recommendation=RUNTIME_ERROR_RECOMMENDATION.format(name=name),
        )


class AnalysisReport(ReportModel):
    """Full analysis result; degraded reports keep every field at its empty value."""

    total_rules: int = 0
    fields_with_rules: int = 0
    dependencies: dict[str, DependencyEntry] = Field(default_factory=dict)
    cycles: int = 0
    cycle_details: list[CycleDetail] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)
    circular_dependencies: list[CircularDependency] = Field(default_factory=list)
    slow_rules: list[SlowRule] = Field(default_factory=list)
    slow_rule_count: int = 0
    runtime_errors: list[RuntimeErrorRecord] = Field(default_factory=list)
    runtime_error_count: int = 0
    validation_errors: ValidationErrors = Field(default_factory=ValidationErrors)
    validation_error_count: int = 0
    graph_strategy: str | None = Field(
        default=None, description="'engine' or 'expression'"
    )
    error: str | None = None
    skipped: bool = False
    skip_reason: str | None = None


class ComparisonDelta(ReportModel):
    cycles: int
    total_rules: int
    slow_rules: int


class ComparisonReport(ReportModel):
    delta: ComparisonDelta
    new_cycles: list[CycleDetail] = Field(default_factory=list)
    resolved_cycles: list[CycleDetail] = Field(default_factory=list)
    slow_rules: list[SlowRule] = Field(default_factory=list)
    slow_rule_count: int = 0


__all__ = [
    "CYCLE_RECOMMENDATION",
    "RUNTIME_ERROR_RECOMMENDATION",
    "AnalysisReport",
    "CircularDependency",
    "ComparisonDelta",
    "ComparisonReport",
    "CycleDetail",
    "DependencyEntry",
    "Issue",
    "RuntimeErrorRecord",
    "SlowRule",
]
