"""Restoring files from a chunked backup, and listing and checking its contents."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from typing import Optional, TextIO

from .compressor import decompress
from .filesystem import ensure_directory_exists
from .hashing import calculate_data_hash
from .metadata import MetadataManager
from .models import ChunkInfo, FileInfo

logger = logging.getLogger(__name__)


class RestoreError(Exception):
    """Raised when a backup cannot be read, checked or restored."""


def _rfc3339(value: datetime) -> str:
    text = value.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _clock(value: datetime) -> str:
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )


class RestoreEngine:
    """Reads a backup directory and writes its live files into a target directory."""

    def __init__(self, backup_path: str | os.PathLike[str],
                 target_path: str | os.PathLike[str] = "") -> None:
        self._backup_path = os.fspath(backup_path)
        self._target_path = os.fspath(target_path)
        self._metadata = MetadataManager(self._backup_path)

    def initialize_without_target(self) -> None:
        """Load the backup's metadata."""
        try:
            self._metadata.load()
        except (OSError, ValueError) as exc:
            raise RestoreError(f"failed to load backup metadata: {exc}") from exc

    def initialize(self) -> None:
        """Load the backup's metadata and create the target directory."""
        self.initialize_without_target()
        try:
            ensure_directory_exists(self._target_path)
        except (OSError, ValueError) as exc:
            raise RestoreError(f"failed to create target directory: {exc}") from exc

    def validate_backup(self) -> int:
        """Check that every recorded chunk file exists; return how many were checked."""
        meta = self._metadata.snapshot()
        for chunk in meta.chunks:
            if not os.path.exists(os.path.join(self._backup_path, chunk.filename)):
                raise RestoreError(f"chunk file missing: {chunk.filename}")
        logger.info("Backup validation completed: %d chunks verified", len(meta.chunks))
        return len(meta.chunks)

    def restore_all(self) -> list[str]:
        """Restore every live file; return the relative paths that were restored.

        A file that cannot be restored is logged and skipped.
        """
        self.validate_backup()
        meta = self._metadata.snapshot()
        chunk_map = {chunk.id: chunk for chunk in meta.chunks}

        restored: list[str] = []
        for info in meta.files.values():
            if info.is_deleted:
                continue
            try:
                self._restore_file(info, chunk_map)
            except (RestoreError, OSError, ValueError) as exc:
                logger.error("Failed to restore file %s: %s", info.path, exc)
                continue
            logger.info("Restored file: %s", info.path)
            restored.append(info.path)
        return restored

    def _restore_file(self, info: FileInfo, chunk_map: dict[int, ChunkInfo]) -> None:
        target_file = os.path.normpath(os.path.join(self._target_path, info.path))
        ensure_directory_exists(os.path.dirname(target_file) or ".")

        pieces: list[bytes] = []
        for chunk_id in info.chunk_refs:
            chunk = chunk_map.get(chunk_id)
            if chunk is None:
                raise RestoreError(f"chunk {chunk_id} not found")
            chunk_path = os.path.join(self._backup_path, chunk.filename)
            try:
                with open(chunk_path, "rb") as handle:
                    compressed = handle.read()
            except OSError as exc:
                raise RestoreError(f"failed to read chunk file: {exc}") from exc
            try:
                chunk_data = decompress(compressed)
            except ValueError as exc:
                raise RestoreError(f"failed to decompress chunk: {exc}") from exc
            if calculate_data_hash(chunk_data) != chunk.hash:
                raise RestoreError(f"chunk {chunk_id} hash verification failed")
            pieces.append(chunk_data)

        try:
            with open(target_file, "wb") as handle:
                handle.write(b"".join(pieces))
        except OSError as exc:
            raise RestoreError(f"failed to write restored file: {exc}") from exc

        try:
            stamp = info.mod_time.timestamp()
            os.utime(target_file, (stamp, stamp))
        except (OSError, OverflowError, ValueError) as exc:
            logger.warning("Failed to restore timestamp for %s: %s", info.path, exc)

    def list_files(self, stream: Optional[TextIO] = None) -> None:
        """Write a listing of the backup's files and a summary to a stream."""
        out = sys.stdout if stream is None else stream
        meta = self._metadata.snapshot()

        print(f"Backup created: {_rfc3339(meta.created_at)}", file=out)
        print(f"Last updated: {_rfc3339(meta.updated_at)}", file=out)
        print(f"Total chunks: {len(meta.chunks)}\n", file=out)

        print("Files in backup:", file=out)
        print("================", file=out)

        active = deleted = 0
        for path in sorted(meta.files):
            info = meta.files[path]
            if info.is_deleted:
                status = "DELETED"
                deleted += 1
            else:
                status = "ACTIVE"
                active += 1
            print(f"{status:<8} {info.size:>10} bytes  {_clock(info.mod_time)}  {path}",
                  file=out)

        print(f"\nSummary: {active} active files, {deleted} deleted files", file=out)