from __future__ import annotations

from pathlib import Path

import pytest

from rulescope.config import ConfigError, RuleScopeConfig, load_config


def _write_config(workspace_root: Path, toml_content: str) -> None:
    (workspace_root / "rulescope.toml").write_text(toml_content, encoding="utf-8")


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config == RuleScopeConfig()
    assert config.profiling.slow_rule_threshold_ms == 50.0
    assert config.profiling.max_reported_slow_rules == 10
    assert config.profiling.expression_preview_chars == 150
    assert config.sandbox.load_timeout_seconds == 10.0
    assert config.graph.reference_suffixes == ["value", "visible", "valid", "enabled"]


def test_unknown_top_level_key_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "bogus_key = true")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_unknown_nested_key_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[profiling]
slow_rule_threshold = 10
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_toml_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "[profiling\nslow_rule_threshold_ms = 1")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path)


def test_negative_threshold_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[profiling]
slow_rule_threshold_ms = -1
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_empty_reference_suffixes_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[graph]
reference_suffixes = []
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_valid_config_accepted(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
workspace_root = "site"

[profiling]
slow_rule_threshold_ms = 5.5

[sandbox]
skip_dirs = ["vendor"]

[graph]
reference_suffixes = ["value", "label"]
""".strip(),
    )

    config = load_config(tmp_path)

    assert config.profiling.slow_rule_threshold_ms == 5.5
    assert config.sandbox.skip_dirs == ["vendor"]
    assert config.graph.reference_suffixes == ["value", "label"]
    assert config.resolve_workspace_root(tmp_path) == (tmp_path / "site").resolve()
