"""Shared utilities for rulescope."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def iter_child_definitions(node: dict[str, Any]) -> Iterator[tuple[str, Any]]:
    """Yield ``(key, child)`` pairs for the children of a form definition node.

    Authoring-format children live in a ``:items`` mapping and are ordered by
    ``:itemsOrder`` when present; keys named there but missing from the mapping
    are skipped. Published-format children live in an ``items`` list and are
    keyed by position.

    Examples:
        >>> node = {":items": {"b": {}, "a": {}}, ":itemsOrder": ["a", "b"]}
        >>> [key for key, _ in iter_child_definitions(node)]
        ['a', 'b']
        >>> [key for key, _ in iter_child_definitions({"items": [{}, {}]})]
        ['0', '1']
    """
    keyed_items = node.get(":items")
    if isinstance(keyed_items, dict):
        order = node.get(":itemsOrder")
        if isinstance(order, list):
            seen: set[str] = set()
            for key in order:
                if key in keyed_items and key not in seen:
                    seen.add(key)
                    yield key, keyed_items[key]
            for key, child in keyed_items.items():
                if key not in seen:
                    yield key, child
        else:
            yield from keyed_items.items()

    listed_items = node.get("items")
    if isinstance(listed_items, list):
        for index, child in enumerate(listed_items):
            yield str(index), child


def has_child_definitions(node: dict[str, Any]) -> bool:
    """Return True when the node declares an items container of a usable shape."""
    return isinstance(node.get(":items"), dict) or isinstance(node.get("items"), list)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` down to at most ``limit`` characters."""
    if limit <= 0:
        return ""
    return text[:limit]


def to_json_bytes(obj: object) -> bytes:
    """Serialize a model or plain object as sorted, indented JSON."""
    payload = obj.model_dump(by_alias=True) if hasattr(obj, "model_dump") else obj
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2)


def write_json(path: Path, obj: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(to_json_bytes(obj))


__all__ = [
    "has_child_definitions",
    "iter_child_definitions",
    "to_json_bytes",
    "truncate",
    "write_json",
]
