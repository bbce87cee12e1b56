"""Compilation of rule expressions into validated Python code objects."""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import Any, cast

from rulescope.runtime.functions import (
    BINARY_OPERATOR_HELPER,
    COMPARE_HELPER,
    ITEM_HELPER,
    UNARY_OPERATOR_HELPER,
    python_name,
)

DOLLAR_PREFIX = "dollar_"

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")
_NUMBER = re.compile(r"\d[\w.]*")
_LITERALS = {"true": "True", "false": "False", "null": "None"}

ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.IfExp,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.Attribute,
    ast.Subscript,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.And,
    ast.Or,
    ast.Not,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Mod,
    ast.Pow,
    ast.USub,
    ast.UAdd,
    ast.Eq,
    ast.NotEq,
    ast.Gt,
    ast.GtE,
    ast.Lt,
    ast.LtE,
    ast.In,
    ast.NotIn,
    ast.Call,
)


class UnsafeExpressionError(ValueError):
    """Raised when the expression includes unsafe or unsupported syntax."""


@dataclass(slots=True, frozen=True)
class ExpressionProgram:
    """Validated, compiled expression that can be reused safely."""

    source: str
    translated: str
    code: Any


def _string_end(text: str, start: int) -> int:
    quote = text[start]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        index += 1
    return len(text)


def _next_significant(text: str, start: int) -> str:
    for char in text[start:]:
        if not char.isspace():
            return char
    return ""


def translate_expression(expression: str) -> str:
    """Rewrite the rule dialect into Python expression syntax.

    String literals are copied untouched. Outside them ``$name`` becomes
    ``dollar_name``, ``&&``/``||``/``!`` become ``and``/``or``/``not``,
    ``true``/``false``/``null`` become Python literals, and calls to the
    ``if`` helper are renamed.

    Examples:
        >>> translate_expression("a.$value > 1 && !$form.b.$visible")
        'a.dollar_value > 1  and   not dollar_form.b.dollar_visible'
        >>> translate_expression("if(x.$value == null, 'n/a', '$x')")
        "if_(x.dollar_value == None, 'n/a', '$x')"
    """
    out: list[str] = []
    index = 0
    length = len(expression)
    while index < length:
        char = expression[index]
        if char in "'\"":
            end = _string_end(expression, index)
            out.append(expression[index:end])
            index = end
            continue
        if char == "$":
            match = _IDENTIFIER.match(expression, index + 1)
            if match is None:
                msg = f"Unsupported '$' reference at position {index}"
                raise UnsafeExpressionError(msg)
            out.append(DOLLAR_PREFIX + match.group(0))
            index = match.end()
            continue
        if expression.startswith(("===", "!=="), index):
            out.append(expression[index : index + 2])
            index += 3
            continue
        if expression.startswith("&&", index):
            out.append(" and ")
            index += 2
            continue
        if expression.startswith("||", index):
            out.append(" or ")
            index += 2
            continue
        if char == "!" and not expression.startswith("!=", index):
            out.append(" not ")
            index += 1
            continue
        if char.isalpha() or char == "_":
            match = cast("re.Match[str]", _IDENTIFIER.match(expression, index))
            word = match.group(0)
            index = match.end()
            if word in _LITERALS:
                out.append(_LITERALS[word])
            elif _next_significant(expression, index) == "(":
                out.append(python_name(word))
            else:
                out.append(word)
            continue
        if char.isdigit():
            # Keep exponent and hex suffixes attached to their number.
            match = cast("re.Match[str]", _NUMBER.match(expression, index))
            out.append(match.group(0))
            index = match.end()
            continue
        out.append(char)
        index += 1
    return "".join(out)


def _validate_ast(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, ALLOWED_NODES):
            msg = f"Unsupported expression node: {type(node).__name__}"
            raise UnsafeExpressionError(msg)
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise UnsafeExpressionError(f"Unsupported name: {node.id}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise UnsafeExpressionError(f"Unsupported attribute: {node.attr}")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise UnsafeExpressionError("Unsupported function call")
            if node.keywords:
                raise UnsafeExpressionError("Keyword arguments are not supported")


def _helper_call(name: str, args: list[ast.expr], origin: ast.AST) -> ast.Call:
    call = ast.Call(func=ast.Name(id=name, ctx=ast.Load()), args=args, keywords=[])
    return ast.copy_location(call, origin)


def _operator_name(op: ast.AST) -> ast.Constant:
    return ast.Constant(value=type(op).__name__)


class _NullSafeOperators(ast.NodeTransformer):
    """Route operators through the null-safe helpers in ``runtime.functions``."""

    def visit_BinOp(self, node: ast.BinOp) -> ast.AST:
        self.generic_visit(node)
        args = [_operator_name(node.op), node.left, node.right]
        return _helper_call(BINARY_OPERATOR_HELPER, args, node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> ast.AST:
        self.generic_visit(node)
        if isinstance(node.op, ast.Not):
            return node
        args = [_operator_name(node.op), node.operand]
        return _helper_call(UNARY_OPERATOR_HELPER, args, node)

    def visit_Compare(self, node: ast.Compare) -> ast.AST:
        self.generic_visit(node)
        names = ast.Tuple(elts=[_operator_name(op) for op in node.ops], ctx=ast.Load())
        args = [names, node.left, *node.comparators]
        return _helper_call(COMPARE_HELPER, args, node)

    def visit_Subscript(self, node: ast.Subscript) -> ast.AST:
        self.generic_visit(node)
        return _helper_call(ITEM_HELPER, [node.value, node.slice], node)


def compile_expression(expression: str) -> ExpressionProgram:
    translated = translate_expression(expression)
    try:
        tree = ast.parse(translated.strip(), mode="eval")
    except SyntaxError as exc:
        msg = f"Cannot parse expression: {exc.msg}"
        raise UnsafeExpressionError(msg) from exc
    _validate_ast(tree)
    # Helper names are dunders, which validation keeps out of user text.
    tree = ast.fix_missing_locations(_NullSafeOperators().visit(tree))
    return ExpressionProgram(
        source=expression,
        translated=translated,
        code=compile(tree, "<rule>", "eval"),
    )


__all__ = [
    "DOLLAR_PREFIX",
    "ExpressionProgram",
    "UnsafeExpressionError",
    "compile_expression",
    "translate_expression",
]
