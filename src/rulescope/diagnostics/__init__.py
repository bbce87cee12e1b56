"""Capture and resolution of runtime binding diagnostics."""

from rulescope.diagnostics.capture import DiagnosticBuffer
from rulescope.diagnostics.resolver import (
    parse_type_conflict,
    resolve_data_ref_error,
    resolve_diagnostics,
)

__all__ = [
    "DiagnosticBuffer",
    "parse_type_conflict",
    "resolve_data_ref_error",
    "resolve_diagnostics",
]
