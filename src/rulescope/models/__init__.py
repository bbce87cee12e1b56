"""Model namespace for rulescope report schemas."""

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
from rulescope.models.validation import (
    AncestorRef,
    ConflictingField,
    DataRefError,
    NullAncestor,
    TypeConflict,
    ValidationErrors,
)

__all__ = [
    "AnalysisReport",
    "AncestorRef",
    "CircularDependency",
    "ComparisonDelta",
    "ComparisonReport",
    "ConflictingField",
    "CycleDetail",
    "DataRefError",
    "DependencyEntry",
    "Issue",
    "NullAncestor",
    "RuntimeErrorRecord",
    "SlowRule",
    "TypeConflict",
    "ValidationErrors",
]
