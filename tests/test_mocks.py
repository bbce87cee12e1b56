from __future__ import annotations

import asyncio

from rulescope.functions.loader import FailureTracker, LoadedFunctions
from rulescope.functions.mocks import (
    build_function_table,
    extract_function_names,
    synthesize_mocks,
)


def test_extract_function_names_from_rules_events_and_validation() -> None:
    definition = {
        "id": "$form",
        "fieldType": "form",
        "events": {"custom:submit": "submitForm($form)"},
        "items": [
            {
                "name": "total",
                "rules": {
                    "value": "round(computeTotal(price.$value, qty.$value))",
                    "visible": {"expression": "if(isEnabled(), true, false)"},
                },
            },
            {
                "name": "email",
                "validationExpression": (
                    "validateEmail($field.$value) && length($field.$value) > 0"
                ),
                "events": {
                    "change": [
                        "setProperty($field, {value: computeTotal(1, 2)})",
                        "lookupCity()",
                    ]
                },
            },
        ],
    }

    names = extract_function_names(definition)

    assert names == [
        "submitForm",
        "computeTotal",
        "isEnabled",
        "lookupCity",
        "validateEmail",
    ]


def test_extract_function_names_ignores_keywords_and_non_strings() -> None:
    definition = {
        "items": [
            {"rules": {"value": "typeof(x) == 'number' and not(y)", "label": 5}},
            {"events": {"click": None}},
        ]
    }

    assert extract_function_names(definition) == []


def test_synthesized_mock_resolves_to_none() -> None:
    mocks = synthesize_mocks(["fetchRates", "known"], resolved=["known"])

    assert list(mocks) == ["fetchRates"]
    assert asyncio.run(mocks["fetchRates"](1, key="x")) is None


def test_function_table_prefers_real_implementations() -> None:
    loaded = LoadedFunctions(
        functions={"computeTotal": lambda a, b: a + b},
        failure_tracker=FailureTracker(),
        file_path="blocks/form/functions.py",
    )

    table = build_function_table(loaded, ["computeTotal", "lookupCity", "submitForm"])

    assert table.real_count == 1
    assert table.mock_count == 2
    assert table.bindings["computeTotal"].kind == "real"
    assert table.callables()["computeTotal"](1, 2) == 3
    assert table.bindings["lookupCity"].kind == "mock"


def test_function_table_without_loaded_source_is_all_mocks() -> None:
    table = build_function_table(None, ["a", "b"])

    assert table.real_count == 0
    assert table.mock_count == 2
