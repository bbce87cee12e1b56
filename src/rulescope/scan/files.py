"""File lookup utilities for custom function sources."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _build_gitignore_matcher(root: Path) -> Callable[[str], bool] | None:
    gitignore_path = root / ".gitignore"
    if gitignore_path.is_file() and not gitignore_path.is_symlink():
        return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
    return None


def normalize_source_path(path_value: str) -> str:
    """Strip leading slashes and normalize separators of a configured path.

    Examples:
        >>> normalize_source_path("/blocks/form/functions.py")
        'blocks/form/functions.py'
        >>> normalize_source_path("\\\\blocks\\\\form\\\\functions.py")
        'blocks/form/functions.py'
    """
    parts = [part for part in path_value.replace("\\", "/").split("/") if part]
    return "/".join(parts)


def _matches_suffix(relative_path: str, target: str) -> bool:
    return relative_path == target or relative_path.endswith("/" + target)


def find_file_by_suffix(
    root: Path,
    target: str,
    *,
    max_depth: int = 5,
    skip_dirs: Iterable[str] = (),
) -> Path | None:
    """Search ``root`` for a file whose root-relative path ends with ``target``.

    Directories are walked depth-first in lexicographic order, so the first
    match is stable across runs. Symlinks, paths escaping the root, directories
    named in ``skip_dirs`` and anything excluded by the root ``.gitignore`` are
    never considered.

    Args:
        root: Directory to search
        target: Normalized relative path to match as a suffix
        max_depth: Number of directory levels to descend (root counts as one)
        skip_dirs: Directory names to skip entirely

    Returns:
        Path of the first match, or None.
    """
    normalized = normalize_source_path(target)
    if not normalized or max_depth <= 0 or not root.is_dir():
        return None

    skipped = frozenset(skip_dirs)
    gitignore_matches = _build_gitignore_matcher(root)

    def _search(directory: Path, depth: int) -> Path | None:
        if depth <= 0:
            return None
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return None

        for entry in entries:
            if entry.name in skipped or entry.is_symlink():
                continue
            if not _is_within_root(entry, root):
                continue
            if gitignore_matches is not None and gitignore_matches(str(entry)):
                continue

            if entry.is_dir():
                found = _search(entry, depth - 1)
                if found is not None:
                    return found
            elif entry.is_file():
                relative_path = entry.relative_to(root).as_posix()
                if _matches_suffix(relative_path, normalized):
                    return entry
        return None

    return _search(root, max_depth)


__all__ = ["find_file_by_suffix", "normalize_source_path"]
