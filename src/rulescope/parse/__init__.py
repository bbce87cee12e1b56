"""Parsing utilities for custom function source."""

from rulescope.parse.treesitter_functions import FunctionSource, prepare_function_source

__all__ = ["FunctionSource", "prepare_function_source"]
