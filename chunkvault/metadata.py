"""Persistent record of backed-up files and chunks, and change detection."""

from __future__ import annotations

import copy
import json
import os
import threading
from datetime import datetime, timezone
from typing import Optional

from .filesystem import ensure_directory_exists
from .hashing import calculate_file_hash
from .models import BackupMetadata, ChunkInfo, FileChange, FileInfo, Operation

METADATA_FILENAME = "metadata.json"


def _mod_time(st: os.stat_result) -> datetime:
    """Modification time of a stat result as an aware local datetime."""
    seconds, remainder = divmod(st.st_mtime_ns, 1_000_000_000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return stamp.replace(microsecond=remainder // 1000).astimezone()


def _copy_info(info: FileInfo) -> FileInfo:
    return copy.deepcopy(info)


class MetadataManager:
    """Thread-safe owner of a backup's metadata and its file on disk."""

    def __init__(self, backup_path: str | os.PathLike[str]) -> None:
        self._backup_path = os.fspath(backup_path)
        self._metadata = BackupMetadata()
        self._lock = threading.RLock()

    @property
    def path(self) -> str:
        """Location of the metadata file."""
        return os.path.join(self._backup_path, METADATA_FILENAME)

    def load(self) -> None:
        """Read the metadata file if there is one; a missing file is not an error."""
        with self._lock:
            try:
                with open(self.path, "r", encoding="utf-8") as handle:
                    data = json.load(handle)
            except FileNotFoundError:
                return
            if not isinstance(data, dict):
                raise ValueError("metadata file does not hold an object")
            self._metadata = BackupMetadata.from_dict(data)

    def save(self) -> None:
        """Write the metadata file atomically, stamping the update time."""
        with self._lock:
            ensure_directory_exists(self._backup_path)
            self._metadata.updated_at = datetime.now().astimezone()
            text = json.dumps(self._metadata.to_dict(), indent=2)
            temp_path = self.path + ".tmp"
            with open(temp_path, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(temp_path, self.path)

    def get_file_info(self, path: str) -> Optional[FileInfo]:
        """Return a copy of the record for a relative path, or None."""
        with self._lock:
            info = self._metadata.files.get(path)
            return None if info is None else _copy_info(info)

    def snapshot(self) -> BackupMetadata:
        """Return an independent copy of the whole metadata."""
        with self._lock:
            return copy.deepcopy(self._metadata)

    def update_file_info(self, path: str, info: FileInfo) -> None:
        """Store the record for a relative path, replacing any earlier one."""
        with self._lock:
            self._metadata.files[path] = _copy_info(info)

    def mark_file_deleted(self, path: str) -> None:
        """Flag a known file as deleted; unknown paths are ignored."""
        with self._lock:
            info = self._metadata.files.get(path)
            if info is not None:
                info.is_deleted = True

    def add_chunk(self, chunk: ChunkInfo) -> None:
        """Append a chunk description."""
        with self._lock:
            self._metadata.chunks.append(copy.copy(chunk))

    def _scan(self, watch_path: str) -> dict[str, FileInfo]:
        current: dict[str, FileInfo] = {}
        for root, _dirs, names in os.walk(watch_path):
            for name in names:
                full_path = os.path.join(root, name)
                try:
                    st = os.lstat(full_path)
                    digest = calculate_file_hash(full_path)
                except OSError:
                    continue
                rel_path = os.path.relpath(full_path, watch_path)
                current[rel_path] = FileInfo(
                    path=rel_path,
                    size=st.st_size,
                    mod_time=_mod_time(st),
                    hash=digest,
                )
        return current

    def detect_changes(self, watch_path: str | os.PathLike[str]) -> list[FileChange]:
        """Compare the files under a directory with the stored records.

        New files give CREATE, changed content or times give MODIFY, and
        stored live files that are gone give DELETE. Files recorded as
        deleted are not reported again.
        """
        current = self._scan(os.fspath(watch_path))
        changes: list[FileChange] = []
        with self._lock:
            stored_files = self._metadata.files
            for path in sorted(current):
                info = current[path]
                stored = stored_files.get(path)
                if stored is None:
                    changes.append(FileChange(path, Operation.CREATE, info))
                elif not stored.is_deleted and (
                    stored.hash != info.hash or stored.mod_time != info.mod_time
                ):
                    changes.append(FileChange(path, Operation.MODIFY, info))
            for path in sorted(stored_files):
                if not stored_files[path].is_deleted and path not in current:
                    changes.append(FileChange(path, Operation.DELETE, None))
        return changes