"""Tree-sitter based inspection of custom function source files."""

from __future__ import annotations

import ast
from dataclasses import dataclass

from tree_sitter import Language, Node, Parser
from tree_sitter_python import language as get_python_language

_PARSER: Parser | None = None

_LINKAGE_NODE_TYPES = frozenset(
    {"import_statement", "import_from_statement", "future_import_statement"}
)


def _get_parser() -> Parser:
    """Initialize and return the Tree-sitter parser with Python language."""
    global _PARSER
    if _PARSER is None:
        lang = Language(get_python_language())
        _PARSER = Parser(lang)

    return _PARSER


@dataclass(frozen=True)
class FunctionSource:
    """Executable source plus the names it declares as its public surface."""

    source: str
    exported_names: tuple[str, ...]
    explicit_exports: bool
    stripped_statements: int


def _decode(source_bytes: bytes, node: Node) -> str:
    return source_bytes[node.start_byte : node.end_byte].decode("utf8", errors="ignore")


def _unwrap_definition(node: Node) -> Node:
    if node.type == "decorated_definition":
        definition = node.child_by_field_name("definition")
        if definition is not None:
            return definition
    return node


def _extract_all_names(source_bytes: bytes, node: Node) -> list[str] | None:
    """Return the string entries of a top-level ``__all__ = [...]`` assignment."""
    if node.type != "expression_statement" or not node.children:
        return None
    assignment = node.children[0]
    if assignment.type != "assignment":
        return None
    left = assignment.child_by_field_name("left")
    right = assignment.child_by_field_name("right")
    if left is None or right is None or _decode(source_bytes, left) != "__all__":
        return None
    if right.type not in ("list", "tuple"):
        return None

    names: list[str] = []
    for child in right.children:
        if child.type != "string":
            continue
        try:
            value = ast.literal_eval(_decode(source_bytes, child))
        except (ValueError, SyntaxError):
            continue
        if isinstance(value, str) and value.isidentifier():
            names.append(value)
    return names


def _top_level_function_names(source_bytes: bytes, root: Node) -> list[str]:
    names: list[str] = []
    for child in root.children:
        definition = _unwrap_definition(child)
        if definition.type != "function_definition":
            continue
        name_node = definition.child_by_field_name("name")
        if name_node is None:
            continue
        name = _decode(source_bytes, name_node)
        if name and not name.startswith("_"):
            names.append(name)
    return names


def _collect_linkage_nodes(node: Node, out: list[Node]) -> None:
    if node.type in _LINKAGE_NODE_TYPES:
        out.append(node)
        return
    for child in node.children:
        _collect_linkage_nodes(child, out)


def _replacement_for(source_bytes: bytes, node: Node) -> bytes:
    # Keep line numbers stable so tracebacks point at the original lines.
    line_breaks = _decode(source_bytes, node).count("\n")
    return b"pass" + b"\n" * line_breaks


def prepare_function_source(source_bytes: bytes) -> FunctionSource:
    """Make custom function source executable as a standalone script.

    Module linkage statements (``import`` / ``from ... import``) are replaced by
    ``pass`` because the sandbox offers no import machinery. The exported names
    are taken from a top-level ``__all__`` list when present, otherwise every
    public top-level function is exported.

    Args:
        source_bytes: Raw file contents

    Returns:
        FunctionSource with the rewritten source and exported names.
    """
    parser = _get_parser()
    tree = parser.parse(source_bytes)
    root = tree.root_node

    explicit: list[str] | None = None
    for child in root.children:
        names = _extract_all_names(source_bytes, child)
        if names is not None:
            explicit = names

    if explicit is not None:
        exported = explicit
    else:
        exported = _top_level_function_names(source_bytes, root)

    linkage_nodes: list[Node] = []
    _collect_linkage_nodes(root, linkage_nodes)

    rewritten = bytearray(source_bytes)
    for node in sorted(linkage_nodes, key=lambda n: n.start_byte, reverse=True):
        replacement = _replacement_for(source_bytes, node)
        rewritten[node.start_byte : node.end_byte] = replacement

    return FunctionSource(
        source=bytes(rewritten).decode("utf8", errors="replace"),
        exported_names=tuple(dict.fromkeys(exported)),
        explicit_exports=explicit is not None,
        stripped_statements=len(linkage_nodes),
    )


__all__ = ["FunctionSource", "prepare_function_source"]
