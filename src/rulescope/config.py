"""Configuration loading for rulescope."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_FILENAME = "rulescope.toml"

DEFAULT_REFERENCE_SUFFIXES = ("value", "visible", "valid", "enabled")
DEFAULT_SKIP_DIRS = ("node_modules", "dist", ".git", "__pycache__", ".venv")


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProfilingConfig(_StrictModel):
    """Settings for the rule execution profiler."""

    slow_rule_threshold_ms: float = Field(
        default=50.0,
        ge=0,
        description="Rule executions slower than this are reported",
    )
    max_reported_slow_rules: int = Field(
        default=10,
        ge=0,
        description="Number of slowest rules kept in the report",
    )
    expression_preview_chars: int = Field(
        default=150,
        ge=0,
        description="Expression text is truncated to this many characters",
    )


class SandboxConfig(_StrictModel):
    """Settings for loading custom function source."""

    load_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Hard limit on executing the function source while defining it",
    )
    search_max_depth: int = Field(
        default=5,
        ge=0,
        description="Directory depth for the fallback search of the function source",
    )
    skip_dirs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_DIRS),
        description="Directory names never descended into by the fallback search",
    )


class GraphConfig(_StrictModel):
    """Settings for dependency graph construction."""

    reference_suffixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_REFERENCE_SUFFIXES),
        description="Property suffixes recognized by the expression-text builder",
    )

    @field_validator("reference_suffixes")
    @classmethod
    def validate_reference_suffixes(cls, v: list[str]) -> list[str]:
        if not v:
            msg = "reference_suffixes must name at least one property"
            raise ValueError(msg)
        for suffix in v:
            if not suffix.isidentifier():
                msg = f"Invalid reference suffix '{suffix}'"
                raise ValueError(msg)
        return v


class RuleScopeConfig(_StrictModel):
    """Top-level configuration."""

    workspace_root: str = Field(
        default=".",
        description="Root that custom function paths are resolved against",
    )
    profiling: ProfilingConfig = Field(default_factory=ProfilingConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)

    def resolve_workspace_root(self, base: Path) -> Path:
        root = Path(self.workspace_root).expanduser()
        if not root.is_absolute():
            root = base / root
        return root.resolve()


class ConfigError(Exception):
    """Raised when config file exists but cannot be parsed."""


def load_config(root: Path) -> RuleScopeConfig:
    """Load configuration from rulescope.toml if it exists."""
    config_path = Path(root) / CONFIG_FILENAME

    if not config_path.is_file():
        return RuleScopeConfig()

    try:
        with config_path.open("rb") as f:
            data: dict[str, Any] = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return RuleScopeConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_REFERENCE_SUFFIXES",
    "DEFAULT_SKIP_DIRS",
    "ConfigError",
    "GraphConfig",
    "ProfilingConfig",
    "RuleScopeConfig",
    "SandboxConfig",
    "load_config",
]
