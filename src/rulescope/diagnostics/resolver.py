"""Resolution of buffered runtime diagnostics against the materialized form."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from rulescope.models.validation import (
    AncestorRef,
    ConflictingField,
    DataRefError,
    NullAncestor,
    TypeConflict,
    ValidationErrors,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rulescope.diagnostics.capture import DiagnosticBuffer
    from rulescope.runtime.model import Form, FormNode

logger = logging.getLogger(__name__)

DATA_REF_ERROR_PATTERN = re.compile(
    r'Error parsing dataRef "([^"]*)" for field "([^"]*)"'
)
CONFLICT_DATA_REF_PATTERN = re.compile(r"DataRef:\s*(\S+)")
CONFLICT_NEW_FIELD_PATTERN = re.compile(r"New field '([^']+)'\s*\(([^)]+)\)")
CONFLICTS_WITH_PATTERN = re.compile(r"conflicts with:\s*(.+?)(?:\.\s*DataRef|$)")
_CONFLICT_ENTRY_PATTERN = re.compile(r"\s*(.+?)\s*\(([^)]+)\)\s*")

MAX_LOGGED_UNEXPECTED = 5


def _ancestors(node: FormNode, form: Form) -> list[FormNode]:
    """Parents of ``node``, closest first, stopping before the form root."""
    chain: list[FormNode] = []
    current = node.parent
    while current is not None and current is not form:
        chain.append(current)
        current = current.parent
    return chain


def _ancestor_ref(node: FormNode) -> AncestorRef:
    data_ref = node.data_ref if isinstance(node.data_ref, str) else None
    return AncestorRef(
        id=node.id,
        name=node.name or node.id,
        data_ref=data_ref,
        null_binding=node.data_ref_declared and node.data_ref is None,
    )


def _nearest_null_ancestor(
    node: FormNode, ancestors: list[FormNode]
) -> NullAncestor | None:
    for depth, ancestor in enumerate(ancestors, start=1):
        if ancestor.data_ref_declared and ancestor.data_ref is None:
            names = [item.name or item.id for item in reversed(ancestors[:depth])]
            names.append(node.name or node.id)
            return NullAncestor(
                id=ancestor.id,
                name=ancestor.name or "unknown",
                depth=depth,
                path=" > ".join(names),
            )
    return None


def resolve_data_ref_error(message: str, form: Form | None) -> DataRefError | None:
    """Classify one buffered dataRef diagnostic. Returns None for unrecognized text."""
    match = DATA_REF_ERROR_PATTERN.search(message)
    if match is None:
        return None
    data_ref, field_id = match.group(1), match.group(2)

    node = form.get_element(field_id) if form is not None else None
    if node is None:
        return DataRefError(
            field_id=field_id,
            data_ref=data_ref,
            message=message,
            root_cause="field-not-found",
        )

    ancestors = _ancestors(node, form)  # type: ignore[arg-type]
    null_ancestor = _nearest_null_ancestor(node, ancestors)
    return DataRefError(
        field_id=field_id,
        data_ref=data_ref,
        field_name=node.name or "unknown",
        message=message,
        root_cause=(
            "ancestor-has-null-binding" if null_ancestor else "no-null-ancestor-found"
        ),
        ancestor_chain=[_ancestor_ref(ancestor) for ancestor in ancestors],
        null_ancestor=null_ancestor,
    )


def _split_conflicts(text: str) -> list[ConflictingField]:
    fields: list[ConflictingField] = []
    for part in text.split(","):
        match = _CONFLICT_ENTRY_PATTERN.fullmatch(part)
        if match is not None:
            fields.append(ConflictingField(name=match.group(1), type=match.group(2)))
        elif part.strip():
            fields.append(ConflictingField(name=part.strip(), type="unknown"))
    return fields


def parse_type_conflict(message: str) -> TypeConflict | None:
    """Extract field names, types and path from a type-conflict diagnostic."""
    new_field = CONFLICT_NEW_FIELD_PATTERN.search(message)
    if new_field is None:
        return None
    data_ref = CONFLICT_DATA_REF_PATTERN.search(message)
    conflicts = CONFLICTS_WITH_PATTERN.search(message)
    return TypeConflict(
        data_ref=data_ref.group(1) if data_ref else "unknown",
        new_field=new_field.group(1),
        new_field_type=new_field.group(2),
        conflicting_fields=_split_conflicts(conflicts.group(1)) if conflicts else [],
        message=message,
    )


def _describe_ancestor(ancestor: AncestorRef) -> str:
    binding = "NULL" if ancestor.null_binding else ancestor.data_ref or "undefined"
    return f"{ancestor.name}(dataRef: {binding})"


def _log_summary(errors: ValidationErrors) -> None:
    if errors.data_ref_errors:
        logger.info("Found %d dataRef parsing error(s)", len(errors.data_ref_errors))
        by_cause: dict[str, list[DataRefError]] = {}
        for error in errors.data_ref_errors:
            by_cause.setdefault(error.root_cause, []).append(error)
        if "field-not-found" in by_cause:
            logger.info(
                "%d field(s) not found in the materialized form "
                "(fragments or conditional panels)",
                len(by_cause["field-not-found"]),
            )
        if "ancestor-has-null-binding" in by_cause:
            logger.info(
                "%d field(s) sit below an ancestor with dataRef: null",
                len(by_cause["ancestor-has-null-binding"]),
            )
        unexpected = by_cause.get("no-null-ancestor-found", [])
        if unexpected:
            logger.warning(
                "%d field(s) fail dataRef parsing with no null ancestor",
                len(unexpected),
            )
            for error in unexpected[:MAX_LOGGED_UNEXPECTED]:
                chain = " > ".join(
                    _describe_ancestor(ancestor) for ancestor in error.ancestor_chain
                )
                logger.warning(
                    'Field "%s" (dataRef: "%s"), ancestor chain: %s',
                    error.field_name,
                    error.data_ref,
                    chain or "No ancestors",
                )
            if len(unexpected) > MAX_LOGGED_UNEXPECTED:
                logger.warning(
                    "... and %d more field(s)", len(unexpected) - MAX_LOGGED_UNEXPECTED
                )
    if errors.type_conflicts:
        logger.info("Found %d type conflict(s)", len(errors.type_conflicts))


def resolve_messages(
    data_ref_messages: Iterable[str],
    type_conflict_messages: Iterable[str],
    form: Form | None,
) -> ValidationErrors:
    errors = ValidationErrors()
    for message in data_ref_messages:
        resolved = resolve_data_ref_error(message, form)
        if resolved is not None:
            errors.data_ref_errors.append(resolved)
    for message in type_conflict_messages:
        conflict = parse_type_conflict(message)
        if conflict is not None:
            errors.type_conflicts.append(conflict)
    _log_summary(errors)
    return errors


def resolve_diagnostics(
    buffer: DiagnosticBuffer, form: Form | None
) -> ValidationErrors:
    """Replay everything ``buffer`` collected once ``form`` is fully built."""
    return resolve_messages(
        buffer.data_ref_messages, buffer.type_conflict_messages, form
    )


__all__ = [
    "DATA_REF_ERROR_PATTERN",
    "parse_type_conflict",
    "resolve_data_ref_error",
    "resolve_diagnostics",
    "resolve_messages",
]
