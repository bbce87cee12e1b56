from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from typing import Any

import orjson
import pytest

from rulescope import RuleAnalyzer, analyze, compare_reports, load_config
from rulescope.models.report import CYCLE_RECOMMENDATION
from rulescope.runtime import RuleEngine

FIXTURES = Path(__file__).parent / "fixtures"
FORMS = FIXTURES / "forms"


def _load(name: str) -> dict[str, Any]:
    return json.loads((FORMS / name).read_text(encoding="utf-8"))


def _workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    shutil.copytree(FIXTURES / "workspace", root)
    return root


def _form_with_rules(
    rules: list[str], *, functions_path: str | None = None
) -> dict[str, Any]:
    form: dict[str, Any] = {
        "id": "$form",
        "fieldType": "form",
        "items": [
            {
                "id": f"f{index}",
                "name": f"field{index}",
                "fieldType": "number-input",
                "rules": {"value": rule},
            }
            for index, rule in enumerate(rules)
        ],
    }
    if functions_path is not None:
        form["properties"] = {"customFunctionsPath": functions_path}
    return form


def _pair_cycle_form() -> dict[str, Any]:
    return {
        "id": "$form",
        "fieldType": "form",
        "items": [
            {
                "id": "x-id",
                "name": "x",
                "fieldType": "number-input",
                "rules": {"value": "y.$value + 1"},
            },
            {
                "id": "y-id",
                "name": "y",
                "fieldType": "number-input",
                "rules": {"value": "x.$value + 1"},
            },
        ],
    }


@pytest.mark.parametrize(
    ("form_json", "message"),
    [
        (None, "No form JSON provided"),
        ("", "No form JSON provided"),
        ("{not json", "Invalid form JSON: Unable to parse"),
        ("[1, 2]", "Form JSON must be an object"),
        (["items"], "Form JSON must be an object"),
    ],
)
def test_unusable_input_reports_error(form_json: Any, message: str) -> None:
    report = analyze(form_json)

    assert report.error == message
    assert report.total_rules == 0
    assert report.cycles == 0
    assert report.skipped is False


@pytest.mark.parametrize(
    ("form_json", "reason"),
    [
        (
            {"title": "nothing here"},
            "Form JSON structure not recognized - missing :items or items",
        ),
        ({"fieldType": "form"}, "Form has no items to analyze"),
        (
            {":type": "fd/franklin/components/form/v1/form"},
            "Form has no items to analyze",
        ),
    ],
)
def test_unrecognized_structure_is_skipped(
    form_json: dict[str, Any], reason: str
) -> None:
    report = analyze(form_json)

    assert report.skipped is True
    assert report.skip_reason == reason
    assert report.error is None
    assert report.dependencies == {}


def test_form_without_rules_reports_zero_counts() -> None:
    report = analyze(_load("no_rules.json"))

    assert report.skipped is False
    assert report.total_rules == 0
    assert report.fields_with_rules == 0
    assert report.dependencies == {}
    assert report.cycles == 0
    assert report.issues == []
    assert report.graph_strategy == "engine"


def test_ring_reports_one_cycle_with_issue() -> None:
    report = analyze((FORMS / "ring.json").read_bytes())

    assert report.total_rules == 3
    assert report.fields_with_rules == 3
    assert report.cycles == 1
    assert report.cycle_details[0].key == "a->b->c"
    assert report.cycle_details[0].fields == ["a", "c", "b", "a"]
    issue = report.issues[0]
    assert issue.severity == "error"
    assert issue.type == "rule-cycle"
    assert issue.message == "Circular dependency detected: a → c → b → a"
    assert issue.recommendation == CYCLE_RECOMMENDATION
    assert report.circular_dependencies[0].cycle == ["a", "c", "b", "a"]
    assert report.dependencies["a"].id == "a-id"
    assert report.dependencies["a"].depends_on == ["c"]
    assert report.dependencies["a"].dependents == ["b"]
    assert "note" not in report.dependencies


def test_analysis_is_deterministic() -> None:
    volatile = {"slow_rules", "slow_rule_count"}

    first = analyze(_load("ring.json")).model_dump(exclude=volatile)
    second = analyze(_load("ring.json")).model_dump(exclude=volatile)

    assert first == second


def test_bootstrap_failure_is_skipped_and_entrypoint_restored() -> None:
    original = RuleEngine.__dict__["execute"]
    form = {
        "id": "$form",
        "fieldType": "form",
        "items": [
            {"id": "dup", "name": "first", "fieldType": "text-input"},
            {"id": "dup", "name": "second", "fieldType": "text-input"},
        ],
    }

    report = analyze(form)

    assert report.skipped is True
    assert (
        report.skip_reason
        == "Unable to analyze form structure: Duplicate field id: dup"
    )
    assert RuleEngine.__dict__["execute"] is original


def test_slow_rules_sorted_and_capped(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    analyzer = RuleAnalyzer(load_config(root), workspace_root=root)
    form = _form_with_rules(
        ["slowCompute(1)"] * 12, functions_path="/blocks/form/functions.py"
    )

    report = analyzer.analyze(form)

    assert report.slow_rule_count == 12
    assert len(report.slow_rules) == 10
    durations = [rule.duration_ms for rule in report.slow_rules]
    assert durations == sorted(durations, reverse=True)
    assert all(duration > 5.0 for duration in durations)
    assert {rule.event for rule in report.slow_rules} == {"ExecuteRule"}
    assert all(rule.expression == "slowCompute(1)" for rule in report.slow_rules)
    assert report.runtime_errors == []


def test_threshold_override_hides_fast_rules(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    analyzer = RuleAnalyzer(
        load_config(root), workspace_root=root, threshold_ms=10_000.0
    )
    form = _form_with_rules(
        ["slowCompute(1)"] * 2, functions_path="/blocks/form/functions.py"
    )

    report = analyzer.analyze(form)

    assert report.slow_rule_count == 0
    assert report.slow_rules == []


def test_runtime_errors_grouped_per_function(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    form = _form_with_rules(
        ["explode(1)", "rejectLater(2)", "formatName('a', 'b')"],
        functions_path="blocks/form/functions.py",
    )

    report = RuleAnalyzer(load_config(root), workspace_root=root).analyze(form)

    assert report.runtime_error_count == 2
    by_name = {record.function_name: record for record in report.runtime_errors}
    assert set(by_name) == {"explode", "rejectLater"}
    explode = by_name["explode"]
    assert explode.error_count == 1
    assert explode.file == "blocks/form/functions.py"
    assert explode.severity == "warning"
    assert explode.type == "runtime-error-in-custom-function"
    assert explode.recommendation.startswith(
        'Function "explode" throws errors during execution.'
    )
    details = orjson.loads(explode.errors[0])
    assert details["name"] == "ValueError"
    assert details["message"] == "cannot handle 1"
    assert orjson.loads(by_name["rejectLater"].errors[0])["name"] == "RuntimeError"


def test_missing_functions_are_mocked(tmp_path: Path) -> None:
    form = _form_with_rules(
        ["lookupRate(1)", "lookupRate(2) + 1"], functions_path="/missing/functions.py"
    )

    report = RuleAnalyzer(workspace_root=tmp_path).analyze(form)

    assert report.skipped is False
    assert report.error is None
    assert report.total_rules == 2
    assert report.runtime_errors == []


def test_validation_errors_reported() -> None:
    report = analyze(_load("bindings.json"))

    assert report.validation_error_count == 4
    causes = [error.root_cause for error in report.validation_errors.data_ref_errors]
    assert causes == [
        "ancestor-has-null-binding",
        "field-not-found",
        "no-null-ancestor-found",
    ]
    assert report.validation_errors.type_conflicts[0].new_field == "ageText"


def test_report_serializes_with_camel_case_keys() -> None:
    payload = analyze(_load("bindings.json")).model_dump(by_alias=True)

    assert {
        "totalRules",
        "fieldsWithRules",
        "cycleDetails",
        "slowRuleCount",
        "validationErrorCount",
    } <= set(payload)
    data_ref_error = payload["validationErrors"]["dataRefErrors"][0]
    assert data_ref_error["fieldId"] == "field-email"
    assert data_ref_error["rootCause"] == "ancestor-has-null-binding"
    assert data_ref_error["nullAncestor"]["path"] == "applicant > email"


def test_compare_reports_new_and_resolved_cycles() -> None:
    before = analyze(_load("ring.json"))
    after = analyze(_pair_cycle_form())

    comparison = compare_reports(before, after)

    assert comparison.delta.cycles == 0
    assert comparison.delta.total_rules == -1
    assert comparison.delta.slow_rules == after.slow_rule_count - before.slow_rule_count
    assert [cycle.key for cycle in comparison.new_cycles] == ["x->y"]
    assert [cycle.key for cycle in comparison.resolved_cycles] == ["a->b->c"]


def test_compare_reports_same_cycle_is_neither_new_nor_resolved() -> None:
    report = analyze(_load("ring.json"))

    comparison = compare_reports(report, report)

    assert comparison.new_cycles == []
    assert comparison.resolved_cycles == []
    assert comparison.delta.cycles == 0


def test_long_rule_ring_is_analyzed() -> None:
    size = 1500
    form = _form_with_rules(
        [f"field{(index + 1) % size}.$value" for index in range(size)]
    )

    report = analyze(form)

    assert report.skipped is False
    assert report.total_rules == size
    assert report.cycles == 1
    assert len(report.cycle_details[0].fields) == size + 1


def test_async_functions_settle_inside_running_loop(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    form = _form_with_rules(
        ["explode(1)", "rejectLater(2)", "formatName('a', 'b')"],
        functions_path="blocks/form/functions.py",
    )
    analyzer = RuleAnalyzer(load_config(root), workspace_root=root)

    async def run() -> Any:
        return analyzer.analyze(form)

    report = asyncio.run(run())

    assert report.runtime_error_count == 2
    assert {record.function_name for record in report.runtime_errors} == {
        "explode",
        "rejectLater",
    }
