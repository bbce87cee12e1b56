from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from rulescope.scan.files import find_file_by_suffix, normalize_source_path

if TYPE_CHECKING:
    from pathlib import Path


def _touch(path: Path, text: str = "") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_normalize_source_path_strips_leading_slash_and_backslashes() -> None:
    expected = "blocks/form/functions.py"

    assert normalize_source_path("/blocks/form/functions.py") == expected
    assert normalize_source_path("\\blocks\\form\\functions.py") == expected
    assert normalize_source_path("//") == ""


def test_find_file_by_suffix_matches_nested_path(tmp_path: Path) -> None:
    _touch(tmp_path / "site" / "blocks" / "form" / "functions.py")

    found = find_file_by_suffix(tmp_path, "blocks/form/functions.py")

    assert found == tmp_path / "site" / "blocks" / "form" / "functions.py"


def test_find_file_by_suffix_requires_whole_segments(tmp_path: Path) -> None:
    _touch(tmp_path / "myblocks" / "form" / "functions.py")

    assert find_file_by_suffix(tmp_path, "blocks/form/functions.py") is None


def test_find_file_by_suffix_is_deterministic(tmp_path: Path) -> None:
    _touch(tmp_path / "b" / "form" / "functions.py")
    _touch(tmp_path / "a" / "form" / "functions.py")

    first = find_file_by_suffix(tmp_path, "form/functions.py")
    second = find_file_by_suffix(tmp_path, "form/functions.py")

    assert first == second == tmp_path / "a" / "form" / "functions.py"


def test_find_file_by_suffix_honors_skip_dirs_and_depth(tmp_path: Path) -> None:
    _touch(tmp_path / "node_modules" / "form" / "functions.py")
    _touch(tmp_path / "one" / "two" / "three" / "form" / "functions.py")

    skip = ["node_modules"]

    assert (
        find_file_by_suffix(tmp_path, "form/functions.py", skip_dirs=skip, max_depth=2)
        is None
    )
    assert find_file_by_suffix(tmp_path, "form/functions.py", skip_dirs=skip) == (
        tmp_path / "one" / "two" / "three" / "form" / "functions.py"
    )


def test_find_file_by_suffix_honors_gitignore(tmp_path: Path) -> None:
    _touch(tmp_path / ".gitignore", "build/\n")
    _touch(tmp_path / "build" / "form" / "functions.py")

    assert find_file_by_suffix(tmp_path, "form/functions.py") is None


@pytest.mark.skipif(
    os.name == "nt",
    reason="Symlink semantics vary on Windows test runners.",
)
def test_find_file_by_suffix_skips_symlinked_dirs(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    external = tmp_path / "external"
    _touch(external / "form" / "functions.py")

    (workspace / "linked").symlink_to(external, target_is_directory=True)

    assert find_file_by_suffix(workspace, "form/functions.py") is None
