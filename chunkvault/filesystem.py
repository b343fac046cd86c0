"""Path validation and small filesystem helpers."""

from __future__ import annotations

import os


def validate_path(path: str | os.PathLike[str]) -> str:
    """Check a path and return its absolute form.

    Raises ValueError for an empty path or one whose absolute form still
    contains ``..``.
    """
    text = os.fspath(path)
    if not text:
        raise ValueError("path cannot be empty")
    abs_path = os.path.abspath(text)
    if ".." in abs_path:
        raise ValueError("directory traversal not allowed")
    return abs_path


def ensure_directory_exists(dir_path: str | os.PathLike[str]) -> str:
    """Create a directory and its parents if missing; return its absolute path."""
    abs_path = validate_path(dir_path)
    os.makedirs(dir_path, mode=0o755, exist_ok=True)
    return abs_path


def get_file_info(file_path: str | os.PathLike[str]) -> os.stat_result:
    """Return the stat result of a path."""
    return os.stat(file_path)


def is_directory(path: str | os.PathLike[str]) -> bool:
    """Tell whether a path names an existing directory."""
    try:
        return os.path.isdir(path)
    except (OSError, ValueError):
        return False