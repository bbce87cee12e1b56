"""Declarative form runtime: live form trees, rule evaluation and events."""

from rulescope.runtime.expressions import (
    ExpressionProgram,
    UnsafeExpressionError,
    compile_expression,
)
from rulescope.runtime.instance import FormBootstrapError, create_form_instance
from rulescope.runtime.model import Dependent, Form, FormNode
from rulescope.runtime.rule_engine import UNRESOLVED, RuleEngine

__all__ = [
    "UNRESOLVED",
    "Dependent",
    "ExpressionProgram",
    "Form",
    "FormBootstrapError",
    "FormNode",
    "RuleEngine",
    "UnsafeExpressionError",
    "compile_expression",
    "create_form_instance",
]
