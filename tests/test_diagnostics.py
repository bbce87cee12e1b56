from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from rulescope.diagnostics import (
    DiagnosticBuffer,
    parse_type_conflict,
    resolve_data_ref_error,
    resolve_diagnostics,
)
from rulescope.runtime import create_form_instance

FORMS = Path(__file__).parent / "fixtures" / "forms"


def _load(name: str) -> dict[str, Any]:
    return json.loads((FORMS / name).read_text(encoding="utf-8"))


def _resolve_bindings_fixture():
    buffer = DiagnosticBuffer()
    form = create_form_instance(_load("bindings.json"), diagnostics=buffer)
    return buffer, resolve_diagnostics(buffer, form)


def test_buffer_collects_binding_diagnostics_in_emission_order() -> None:
    buffer, _ = _resolve_bindings_fixture()

    assert buffer.data_ref_messages == [
        'Error parsing dataRef "contact.email" for field "field-email"',
        'Error parsing dataRef "amount" for field "field-amount"',
        'Error parsing dataRef "contact..phone" for field "field-broken"',
    ]
    assert len(buffer.type_conflict_messages) == 1
    assert len(buffer) == 4


def test_buffer_ignores_logging_configuration() -> None:
    root = logging.getLogger()
    previous_level = root.level
    root.setLevel(logging.ERROR)
    try:
        buffer, _ = _resolve_bindings_fixture()
        assert len(buffer.type_conflict_messages) == 1

        logging.disable(logging.CRITICAL)
        buffer, errors = _resolve_bindings_fixture()
    finally:
        logging.disable(logging.NOTSET)
        root.setLevel(previous_level)

    assert len(buffer.data_ref_messages) == 3
    assert len(buffer.type_conflict_messages) == 1
    assert errors.count == 4


def test_buffer_receives_nothing_unless_passed() -> None:
    buffer = DiagnosticBuffer()

    create_form_instance(_load("bindings.json"))

    assert len(buffer) == 0


def test_empty_data_ref_is_resolved() -> None:
    buffer = DiagnosticBuffer()
    form = create_form_instance(
        {
            "id": "$form",
            "fieldType": "form",
            "items": [
                {"id": "e", "name": "e", "fieldType": "text-input", "dataRef": ""}
            ],
        },
        diagnostics=buffer,
    )

    errors = resolve_diagnostics(buffer, form)

    assert buffer.data_ref_messages == ['Error parsing dataRef "" for field "e"']
    assert len(errors.data_ref_errors) == 1
    error = errors.data_ref_errors[0]
    assert error.data_ref == ""
    assert error.field_id == "e"
    assert error.root_cause == "no-null-ancestor-found"


def test_field_below_null_binding_reports_nearest_null_ancestor() -> None:
    _, errors = _resolve_bindings_fixture()

    email = errors.data_ref_errors[0]
    assert email.field_id == "field-email"
    assert email.field_name == "email"
    assert email.root_cause == "ancestor-has-null-binding"
    assert email.null_ancestor is not None
    assert email.null_ancestor.id == "panel-applicant"
    assert email.null_ancestor.name == "applicant"
    assert email.null_ancestor.depth == 1
    assert email.null_ancestor.path == "applicant > email"
    assert [ancestor.id for ancestor in email.ancestor_chain] == ["panel-applicant"]
    assert email.ancestor_chain[0].null_binding is True


def test_field_missing_from_materialized_form_is_not_found() -> None:
    _, errors = _resolve_bindings_fixture()

    amount = errors.data_ref_errors[1]
    assert amount.field_id == "field-amount"
    assert amount.data_ref == "amount"
    assert amount.root_cause == "field-not-found"
    assert amount.ancestor_chain == []
    assert amount.null_ancestor is None


def test_malformed_reference_without_null_ancestor() -> None:
    _, errors = _resolve_bindings_fixture()

    broken = errors.data_ref_errors[2]
    assert broken.field_id == "field-broken"
    assert broken.root_cause == "no-null-ancestor-found"
    assert broken.ancestor_chain == []
    assert broken.null_ancestor is None


def test_type_conflict_resolved_from_shared_path() -> None:
    _, errors = _resolve_bindings_fixture()

    assert errors.count == 4
    conflict = errors.type_conflicts[0]
    assert conflict.data_ref == "$.applicant.age"
    assert conflict.new_field == "ageText"
    assert conflict.new_field_type == "string"
    assert [(field.name, field.type) for field in conflict.conflicting_fields] == [
        ("age", "number")
    ]


def test_nearest_null_ancestor_depth_counts_levels() -> None:
    form = create_form_instance(
        {
            "id": "$form",
            "fieldType": "form",
            "items": [
                {
                    "id": "outer",
                    "name": "outer",
                    "fieldType": "panel",
                    "dataRef": None,
                    "items": [
                        {
                            "id": "inner",
                            "name": "inner",
                            "fieldType": "panel",
                            "items": [
                                {
                                    "id": "city",
                                    "name": "city",
                                    "fieldType": "text-input",
                                    "dataRef": "city",
                                }
                            ],
                        }
                    ],
                }
            ],
        }
    )

    error = resolve_data_ref_error(
        'Error parsing dataRef "city" for field "city"', form
    )

    assert error is not None
    assert error.root_cause == "ancestor-has-null-binding"
    assert [ancestor.id for ancestor in error.ancestor_chain] == ["inner", "outer"]
    assert error.null_ancestor is not None
    assert error.null_ancestor.depth == 2
    assert error.null_ancestor.path == "outer > inner > city"


def test_unrecognized_data_ref_message_is_ignored() -> None:
    assert resolve_data_ref_error("something else entirely", None) is None


def test_data_ref_error_without_form_is_not_found() -> None:
    error = resolve_data_ref_error('Error parsing dataRef "a.b" for field "f-1"', None)

    assert error is not None
    assert error.root_cause == "field-not-found"
    assert error.field_name is None


def test_type_conflict_with_several_existing_fields() -> None:
    conflict = parse_type_conflict(
        "Type conflict detected: New field 'total' (string) conflicts with: "
        "amount (number), agreed (boolean). DataRef: $.order.total"
    )

    assert conflict is not None
    assert conflict.data_ref == "$.order.total"
    assert [(field.name, field.type) for field in conflict.conflicting_fields] == [
        ("amount", "number"),
        ("agreed", "boolean"),
    ]


def test_type_conflict_without_new_field_is_ignored() -> None:
    assert parse_type_conflict("Type conflict detected somewhere") is None


def test_buffer_observes_without_suppressing(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="rulescope.runtime")

    buffer = DiagnosticBuffer()
    create_form_instance(_load("bindings.json"), diagnostics=buffer)

    binding_messages = [
        record.getMessage()
        for record in caplog.records
        if record.name == "rulescope.runtime.binding"
    ]
    assert binding_messages == [
        *buffer.data_ref_messages,
        *buffer.type_conflict_messages,
    ]
