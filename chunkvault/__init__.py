"""Chunked, gzip-compressed file backup with directory watching, listing, verification and restore."""

__version__ = "0.1.0"