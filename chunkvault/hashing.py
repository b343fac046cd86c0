"""SHA-256 digests of files and byte strings."""

from __future__ import annotations

import hashlib
import os

_BLOCK = 64 * 1024


def calculate_file_hash(file_path: str | os.PathLike[str]) -> str:
    """Return the hex SHA-256 digest of a file's contents."""
    digest = hashlib.sha256()
    with open(file_path, "rb") as handle:
        for block in iter(lambda: handle.read(_BLOCK), b""):
            digest.update(block)
    return digest.hexdigest()


def calculate_data_hash(data: bytes) -> str:
    """Return the hex SHA-256 digest of a byte string."""
    return hashlib.sha256(data).hexdigest()