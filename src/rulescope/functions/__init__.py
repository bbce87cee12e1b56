"""Custom function loading and mock synthesis."""

from rulescope.functions.loader import (
    CustomFunctionLoader,
    FailureTracker,
    LoadedFunctions,
)
from rulescope.functions.mocks import (
    FunctionBinding,
    FunctionTable,
    build_function_table,
    extract_function_names,
)

__all__ = [
    "CustomFunctionLoader",
    "FailureTracker",
    "FunctionBinding",
    "FunctionTable",
    "LoadedFunctions",
    "build_function_table",
    "extract_function_names",
]
