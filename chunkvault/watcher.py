"""Recursive directory watching with debounced change events and periodic scans."""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .models import FileEvent, Operation

logger = logging.getLogger(__name__)

_POLL = 0.1


class Debouncer:
    """Runs a callback once a key has been quiet for a delay.

    A new submission for a key cancels the pending one, so only the
    last callback of a burst runs.
    """

    def __init__(self, delay: float = 0.5) -> None:
        self._delay = delay
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def submit(self, key: str, fn: Callable[[], None]) -> None:
        """Schedule fn for key, replacing any callback still pending for it."""
        with self._lock:
            existing = self._timers.pop(key, None)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(self._delay, self._fire, args=(key, fn))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        finally:
            with self._lock:
                if self._timers.get(key) is threading.current_thread():
                    del self._timers[key]

    def cancel_all(self) -> None:
        """Drop every pending callback."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()


class _Handler(FileSystemEventHandler):
    def __init__(self, watcher: "Watcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._watcher._on_event(event)


class Watcher:
    """Watches directory trees and puts FileEvent records on the ``changes`` queue.

    Events for a path are debounced; CREATE, MODIFY and DELETE are
    reported. Every ``scan_interval`` seconds each watched directory is
    walked and a SCAN event is reported for every file.
    """

    def __init__(self, debounce: float = 0.5, scan_interval: float = 300.0) -> None:
        self.changes: queue.Queue[FileEvent] = queue.Queue(maxsize=1)
        self._debouncer = Debouncer(debounce)
        self._scan_interval = scan_interval
        self._observer = Observer()
        self._handler = _Handler(self)
        self._watched_dirs: list[str] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._started = False
        self._scan_thread: Optional[threading.Thread] = None

    def add_watch(self, path: str | os.PathLike[str]) -> None:
        """Watch a directory and every directory below it."""
        root = os.fspath(path)
        os.stat(root)

        def fail(exc: OSError) -> None:
            raise exc

        with self._lock:
            if not os.path.isdir(root):
                return
            for dir_path, _dirs, _files in os.walk(root, onerror=fail):
                if dir_path not in self._watched_dirs:
                    self._watched_dirs.append(dir_path)
                logger.info("Watching directory: %s", dir_path)
            self._observer.schedule(self._handler, root, recursive=True)

    def start(self) -> None:
        """Begin delivering events and periodic scans."""
        if self._started:
            return
        self._started = True
        self._observer.start()
        self._scan_thread = threading.Thread(
            target=self._scan_loop, name="watcher-scan", daemon=True
        )
        self._scan_thread.start()

    def close(self) -> None:
        """Stop watching and discard pending events."""
        self._stop.set()
        self._debouncer.cancel_all()
        if self._started:
            self._observer.stop()
            self._observer.join()
            if self._scan_thread is not None:
                self._scan_thread.join()
                self._scan_thread = None
            self._started = False

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _on_event(self, event: FileSystemEvent) -> None:
        src = os.fsdecode(event.src_path)
        kind = event.event_type
        if kind == EVENT_TYPE_CREATED:
            self._schedule(src, Operation.CREATE)
        elif kind == EVENT_TYPE_MODIFIED:
            if not event.is_directory:
                self._schedule(src, Operation.MODIFY)
        elif kind == EVENT_TYPE_DELETED:
            self._schedule(src, Operation.DELETE)
        elif kind == EVENT_TYPE_MOVED:
            self._schedule(src, None)
            dest = getattr(event, "dest_path", "")
            if dest:
                self._schedule(os.fsdecode(dest), Operation.CREATE)

    def _schedule(self, path: str, operation: Optional[Operation]) -> None:
        def send() -> None:
            if operation is not None:
                self._emit(path, operation)

        self._debouncer.submit(path, send)

    def _emit(self, path: str, operation: Operation) -> bool:
        event = FileEvent(path=path, operation=operation)
        while not self._stop.is_set():
            try:
                self.changes.put(event, timeout=_POLL)
                return True
            except queue.Full:
                continue
        return False

    def _scan_loop(self) -> None:
        while not self._stop.wait(self._scan_interval):
            self._full_scan()

    def _full_scan(self) -> None:
        with self._lock:
            dirs = list(self._watched_dirs)
        for directory in dirs:
            for root, _dirs, names in os.walk(directory):
                for name in names:
                    if not self._emit(os.path.join(root, name), Operation.SCAN):
                        return