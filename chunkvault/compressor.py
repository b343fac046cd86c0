"""Gzip compression of chunk payloads."""

from __future__ import annotations

import gzip
import zlib


def compress(data: bytes) -> bytes:
    """Gzip-compress a byte string."""
    return gzip.compress(data)


def decompress(data: bytes) -> bytes:
    """Decompress gzip data; raise ValueError if it is not valid gzip."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"invalid gzip data: {exc}") from exc