"""Engine that turns file changes into compressed chunks and metadata."""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Iterable, Optional

from .chunker import Chunker
from .compressor import compress
from .filesystem import ensure_directory_exists
from .metadata import MetadataManager
from .models import ChunkInfo, FileChange, Operation

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 10
_POLL = 0.1


class BackupError(Exception):
    """Raised when a backup step fails."""


class BackupEngine:
    """Backs up a watched directory into a backup directory.

    Call initialize(), then start() for background processing of changes
    handed to process_changes(), and shutdown() when done.
    """

    def __init__(self, watch_path: str | os.PathLike[str],
                 backup_path: str | os.PathLike[str]) -> None:
        self._watch_path = os.fspath(watch_path)
        self._backup_path = os.fspath(backup_path)
        self._metadata = MetadataManager(self._backup_path)
        self._chunker = Chunker()
        self._queue: queue.Queue[list[FileChange]] = queue.Queue(maxsize=_QUEUE_SIZE)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def initialize(self) -> None:
        """Create the backup directory and load any existing metadata."""
        try:
            ensure_directory_exists(self._backup_path)
        except (OSError, ValueError) as exc:
            raise BackupError(f"failed to create backup directory: {exc}") from exc
        try:
            self._metadata.load()
        except (OSError, ValueError) as exc:
            raise BackupError(f"failed to load metadata: {exc}") from exc
        chunk_ids = [chunk.id for chunk in self._metadata.snapshot().chunks]
        self._chunker = Chunker(start_id=max(chunk_ids, default=0) + 1)

    def start(self) -> None:
        """Begin processing queued changes in a background thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="backup-engine", daemon=True)
        self._thread.start()

    def process_changes(self, changes: Iterable[FileChange]) -> None:
        """Queue a batch of changes, waiting while the queue is full."""
        batch = list(changes)
        while True:
            if self._stop.is_set():
                raise BackupError("backup engine is shutting down")
            try:
                self._queue.put(batch, timeout=_POLL)
                return
            except queue.Full:
                continue

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                changes = self._queue.get(timeout=_POLL)
            except queue.Empty:
                continue
            if self._stop.is_set():
                return
            try:
                self._handle_changes(changes)
            except (BackupError, OSError, ValueError) as exc:
                logger.error("Error processing changes: %s", exc)

    def _handle_changes(self, changes: list[FileChange]) -> None:
        with self._lock:
            files_to_backup: list[str] = []
            for change in changes:
                if change.operation in (Operation.CREATE, Operation.MODIFY):
                    if change.file_info is not None:
                        files_to_backup.append(os.path.join(self._watch_path, change.path))
                        self._metadata.update_file_info(change.path, change.file_info)
                elif change.operation == Operation.DELETE:
                    self._metadata.mark_file_deleted(change.path)

            if files_to_backup:
                try:
                    self._create_backup_chunks(files_to_backup)
                except (BackupError, OSError) as exc:
                    raise BackupError(f"failed to create backup chunks: {exc}") from exc

            self._metadata.save()

    def _create_backup_chunks(self, files: list[str]) -> None:
        for chunk in self._chunker.create_chunks(files):
            compressed = compress(chunk.data)
            filename = f"chunk_{chunk.id:06d}.gz"
            chunk_path = os.path.join(self._backup_path, filename)
            try:
                with open(chunk_path, "wb") as handle:
                    handle.write(compressed)
            except OSError as exc:
                raise BackupError(f"failed to write chunk file: {exc}") from exc

            self._metadata.add_chunk(
                ChunkInfo(
                    id=chunk.id,
                    filename=filename,
                    size=len(chunk.data),
                    hash=chunk.hash,
                    compressed_size=len(compressed),
                )
            )

            for entry in chunk.files:
                rel_path = os.path.relpath(entry.path, self._watch_path)
                stored = self._metadata.get_file_info(rel_path)
                if stored is not None:
                    stored.chunk_refs.append(chunk.id)
                    self._metadata.update_file_info(rel_path, stored)

            logger.info("Created chunk %s with %d files", filename, len(chunk.files))

    def perform_full_backup(self) -> None:
        """Scan the watched directory and back up everything that changed."""
        try:
            changes = self._metadata.detect_changes(self._watch_path)
        except OSError as exc:
            raise BackupError(f"failed to detect changes: {exc}") from exc
        logger.info("Detected %d changes for full backup", len(changes))
        self._handle_changes(changes)

    def shutdown(self) -> None:
        """Stop background processing and wait for it to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None