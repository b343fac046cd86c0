"""Packing of files into fixed-limit chunks and extraction from them."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable

from .hashing import calculate_data_hash

CHUNK_SIZE = 5 * 1024 * 1024


class ChunkError(Exception):
    """Raised when a file cannot be taken out of a chunk intact."""


@dataclass
class ChunkFileInfo:
    """Where one file lies inside a chunk."""

    path: str
    offset: int
    size: int
    hash: str


@dataclass
class ChunkData:
    """An uncompressed chunk: concatenated file bytes and their layout."""

    id: int
    data: bytes = b""
    files: list[ChunkFileInfo] = field(default_factory=list)
    hash: str = ""


class Chunker:
    """Groups files into chunks of at most CHUNK_SIZE bytes where possible."""

    def __init__(self, start_id: int = 1) -> None:
        self._next_id = start_id

    def _allocate_id(self) -> int:
        chunk_id = self._next_id
        self._next_id += 1
        return chunk_id

    def create_chunks(self, files: Iterable[str | os.PathLike[str]]) -> list[ChunkData]:
        """Pack readable regular files into chunks, in the order given.

        Missing, unreadable and directory paths are skipped. A file larger
        than the limit gets a chunk of its own.
        """
        chunks: list[ChunkData] = []
        chunk_id = self._allocate_id()
        buffer = bytearray()
        entries: list[ChunkFileInfo] = []
        current_size = 0

        def finish() -> None:
            data = bytes(buffer)
            chunks.append(
                ChunkData(id=chunk_id, data=data, files=list(entries),
                          hash=calculate_data_hash(data))
            )

        for file_path in files:
            try:
                st = os.stat(file_path)
            except OSError:
                continue
            if os.path.isdir(file_path):
                continue

            if current_size + st.st_size > CHUNK_SIZE and entries:
                finish()
                chunk_id = self._allocate_id()
                buffer.clear()
                entries.clear()
                current_size = 0

            try:
                with open(file_path, "rb") as handle:
                    file_data = handle.read()
            except OSError:
                continue

            entries.append(
                ChunkFileInfo(
                    path=os.fspath(file_path),
                    offset=len(buffer),
                    size=len(file_data),
                    hash=calculate_data_hash(file_data),
                )
            )
            buffer.extend(file_data)
            current_size += st.st_size

        if entries:
            finish()
        return chunks

    def extract_file_from_chunk(self, chunk_data: bytes, file_info: ChunkFileInfo) -> bytes:
        """Return one file's bytes from a chunk, checking bounds and hash."""
        end = file_info.offset + file_info.size
        if end > len(chunk_data):
            raise ChunkError("file data extends beyond chunk boundary")
        data = bytes(chunk_data[file_info.offset:end])
        if calculate_data_hash(data) != file_info.hash:
            raise ChunkError("file hash mismatch")
        return data