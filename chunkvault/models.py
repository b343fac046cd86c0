"""Data records shared by the backup, metadata and restore components."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_FRACTION = re.compile(r"\.(\d+)")


def _now() -> datetime:
    return datetime.now().astimezone()


def format_time(value: datetime) -> str:
    """Render a timestamp as RFC 3339 text, using ``Z`` for UTC."""
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def parse_time(text: str) -> datetime:
    """Parse RFC 3339 text, including a ``Z`` suffix and nanosecond fractions."""
    normalized = text.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    normalized = _FRACTION.sub(
        lambda m: "." + (m.group(1) + "000000")[:6], normalized, count=1
    )
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp: {text!r}") from exc


class Operation(str, Enum):
    """Kinds of change reported for a file."""

    CREATE = "CREATE"
    MODIFY = "MODIFY"
    DELETE = "DELETE"
    SCAN = "SCAN"


@dataclass
class ChunkInfo:
    """Description of one stored chunk file."""

    id: int
    filename: str
    size: int
    hash: str
    compressed_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "size": self.size,
            "hash": self.hash,
            "compressed_size": self.compressed_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChunkInfo":
        return cls(
            id=int(data.get("id", 0)),
            filename=data.get("filename", ""),
            size=int(data.get("size", 0)),
            hash=data.get("hash", ""),
            compressed_size=int(data.get("compressed_size", 0)),
        )


@dataclass
class FileInfo:
    """State recorded for one backed-up file."""

    path: str
    size: int = 0
    mod_time: datetime = ZERO_TIME
    hash: str = ""
    chunk_refs: list[int] = field(default_factory=list)
    is_deleted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "mod_time": format_time(self.mod_time),
            "hash": self.hash,
            "chunk_refs": list(self.chunk_refs),
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileInfo":
        mod_time = data.get("mod_time")
        return cls(
            path=data.get("path", ""),
            size=int(data.get("size", 0)),
            mod_time=parse_time(mod_time) if mod_time else ZERO_TIME,
            hash=data.get("hash", ""),
            chunk_refs=[int(ref) for ref in data.get("chunk_refs") or []],
            is_deleted=bool(data.get("is_deleted", False)),
        )


@dataclass
class BackupMetadata:
    """Everything stored in a backup's metadata file."""

    version: str = "1.0"
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = ZERO_TIME
    files: dict[str, FileInfo] = field(default_factory=dict)
    chunks: list[ChunkInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created_at": format_time(self.created_at),
            "updated_at": format_time(self.updated_at),
            "files": {path: info.to_dict() for path, info in self.files.items()},
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupMetadata":
        meta = cls()
        if "version" in data:
            meta.version = data["version"]
        if data.get("created_at"):
            meta.created_at = parse_time(data["created_at"])
        if data.get("updated_at"):
            meta.updated_at = parse_time(data["updated_at"])
        meta.files = {
            path: FileInfo.from_dict(info)
            for path, info in (data.get("files") or {}).items()
        }
        meta.chunks = [ChunkInfo.from_dict(c) for c in data.get("chunks") or []]
        return meta


@dataclass
class FileEvent:
    """A change seen by the file watcher."""

    path: str
    operation: Operation
    timestamp: datetime = field(default_factory=_now)


@dataclass
class FileChange:
    """A change handed to the backup engine."""

    path: str
    operation: Operation
    file_info: Optional[FileInfo] = None