"""Validation error models resolved from runtime diagnostics."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from rulescope.models.base import ReportModel

RootCause = Literal[
    "field-not-found", "ancestor-has-null-binding", "no-null-ancestor-found"
]


class AncestorRef(ReportModel):
    """One ancestor in a field's ownership chain, closest first."""

    id: str
    name: str
    data_ref: str | None = None
    null_binding: bool = Field(
        default=False, description="True when the ancestor declares dataRef: null"
    )


class NullAncestor(ReportModel):
    id: str
    name: str
    depth: int = Field(description="Levels above the field, 1 for the parent")
    path: str = Field(
        description="Names from the null ancestor down to the field, joined by ' > '"
    )


class DataRefError(ReportModel):
    field_id: str
    data_ref: str
    field_name: str | None = None
    message: str
    root_cause: RootCause
    ancestor_chain: list[AncestorRef] = Field(default_factory=list)
    null_ancestor: NullAncestor | None = None


class ConflictingField(ReportModel):
    name: str
    type: str


class TypeConflict(ReportModel):
    data_ref: str
    new_field: str
    new_field_type: str
    conflicting_fields: list[ConflictingField] = Field(default_factory=list)
    message: str


class ValidationErrors(ReportModel):
    data_ref_errors: list[DataRefError] = Field(default_factory=list)
    type_conflicts: list[TypeConflict] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.data_ref_errors) + len(self.type_conflicts)


__all__ = [
    "AncestorRef",
    "ConflictingField",
    "DataRefError",
    "NullAncestor",
    "RootCause",
    "TypeConflict",
    "ValidationErrors",
]
