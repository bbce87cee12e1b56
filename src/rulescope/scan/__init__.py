"""Workspace file discovery."""

from rulescope.scan.files import find_file_by_suffix, normalize_source_path

__all__ = ["find_file_by_suffix", "normalize_source_path"]
