"""Command-line entry point: watch and back up, restore, list or verify a backup."""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import queue
import signal
import sys
import threading
import time
from typing import Iterator, Optional, Sequence

from .backup_engine import BackupEngine, BackupError
from .models import FileChange
from .restore import RestoreEngine, RestoreError
from .watcher import Watcher

logger = logging.getLogger(__name__)

_POLL = 0.1

_USAGE_EXAMPLES = """
Usage Examples:
===============

1. Start backup monitoring (watch mode):
   {prog} --watch /path/to/watch --backup /path/to/backup --refresh 60

2. Restore from backup:
   {prog} --restore --backup /path/to/backup --target /path/to/restore

3. List files in backup:
   {prog} --list --backup /path/to/backup

4. Verify backup integrity:
   {prog} --verify --backup /path/to/backup

"""


class _CommandError(Exception):
    """A failure reported to the user with a mode-specific prefix."""


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the command."""
    parser = argparse.ArgumentParser(
        prog="chunkvault",
        description="A comprehensive file backup system with real-time "
                    "monitoring and chunked storage",
    )
    parser.add_argument("--watch", default="", help="Directory to watch for changes")
    parser.add_argument("--backup", default="", help="Directory to store backup files")
    parser.add_argument("--target", default="",
                        help="Target directory for restore (restore mode only)")
    parser.add_argument("--refresh", type=int, default=300,
                        help="Full scan interval in seconds")
    parser.add_argument("--restore", action="store_true", help="Enable restore mode")
    parser.add_argument("--list", action="store_true", help="List files in backup")
    parser.add_argument("--verify", action="store_true", help="Verify backup integrity")
    return parser


def _print_usage_examples(prog: str) -> None:
    sys.stderr.write(_USAGE_EXAMPLES.format(prog=prog))


def _require_backup_path(backup_path: str) -> None:
    if not os.path.exists(backup_path):
        raise _CommandError(f"backup path does not exist: {backup_path}")


def _open_backup(backup_path: str) -> RestoreEngine:
    _require_backup_path(backup_path)
    engine = RestoreEngine(backup_path, "")
    try:
        engine.initialize_without_target()
    except RestoreError as exc:
        raise _CommandError(f"failed to initialize restore engine: {exc}") from exc
    return engine


def _list_backup_files(args: argparse.Namespace) -> None:
    _open_backup(args.backup).list_files()


def _verify_backup(args: argparse.Namespace) -> None:
    engine = _open_backup(args.backup)
    try:
        engine.validate_backup()
    except RestoreError as exc:
        raise _CommandError(f"backup validation failed: {exc}") from exc
    print("Backup verification completed successfully!")


def _run_restore(args: argparse.Namespace) -> None:
    logger.info("Starting restore operation...")
    logger.info("Backup path: %s", args.backup)
    logger.info("Target path: %s", args.target)
    _require_backup_path(args.backup)

    engine = RestoreEngine(args.backup, args.target)
    try:
        engine.initialize()
    except RestoreError as exc:
        raise _CommandError(f"failed to initialize restore engine: {exc}") from exc
    engine.list_files()
    try:
        engine.restore_all()
    except RestoreError as exc:
        raise _CommandError(f"restore operation failed: {exc}") from exc
    logger.info("Restore operation completed successfully!")


@contextlib.contextmanager
def _termination_signals(stop: threading.Event) -> Iterator[None]:
    """Set ``stop`` on SIGINT or SIGTERM while the block runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(_signum: int, _frame: object) -> None:
        stop.set()

    wanted = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        wanted.append(signal.SIGTERM)
    previous = {signum: signal.signal(signum, handler) for signum in wanted}
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)


def _full_backup(engine: BackupEngine, failure: str) -> None:
    try:
        engine.perform_full_backup()
    except (BackupError, OSError, ValueError) as exc:
        logger.warning("%s: %s", failure, exc)


def _run_backup(args: argparse.Namespace) -> None:
    stop = threading.Event()
    with _termination_signals(stop):
        logger.info("Starting backup system...")
        logger.info("Watch path: %s", args.watch)
        logger.info("Backup path: %s", args.backup)
        logger.info("Refresh rate: %d seconds", args.refresh)

        if not os.path.exists(args.watch):
            raise _CommandError(f"watch path does not exist: {args.watch}")
        if args.refresh <= 0:
            raise _CommandError("refresh interval must be positive")

        engine = BackupEngine(args.watch, args.backup)
        try:
            engine.initialize()
        except BackupError as exc:
            raise _CommandError(f"failed to initialize backup engine: {exc}") from exc

        with Watcher() as watcher:
            try:
                watcher.add_watch(args.watch)
            except OSError as exc:
                raise _CommandError(f"failed to add watch path: {exc}") from exc

            engine.start()
            watcher.start()
            try:
                logger.info("Performing initial full backup...")
                _full_backup(engine, "Warning: initial backup failed")

                logger.info("Backup system started. Press Ctrl+C to stop.")
                next_refresh = time.monotonic() + args.refresh
                while not stop.is_set():
                    wait = max(0.0, min(_POLL, next_refresh - time.monotonic()))
                    try:
                        event = watcher.changes.get(timeout=wait)
                    except queue.Empty:
                        event = None
                    if event is not None:
                        try:
                            engine.process_changes(
                                [FileChange(path=event.path, operation=event.operation)]
                            )
                        except BackupError as exc:
                            logger.error("Error processing changes: %s", exc)
                    if time.monotonic() >= next_refresh:
                        logger.info("Performing periodic full backup...")
                        _full_backup(engine, "Periodic backup failed")
                        next_refresh += args.refresh
            except KeyboardInterrupt:
                pass
            logger.info("Shutdown signal received...")
            engine.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command; return the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    def fail(message: str, usage: bool = False) -> int:
        sys.stderr.write(f"Error: {message}\n")
        if usage:
            _print_usage_examples(parser.prog)
        return 1

    if not args.backup:
        return fail("--backup path is required", usage=True)

    modes = [args.list, args.verify, args.restore, bool(args.watch)]
    mode_count = sum(modes)
    if mode_count == 0:
        return fail("You must specify one operation mode", usage=True)
    if mode_count > 1:
        return fail("Only one operation mode can be specified at a time", usage=True)

    if args.list:
        action, prefix = _list_backup_files, "Error listing files"
    elif args.verify:
        action, prefix = _verify_backup, "Error verifying backup"
    elif args.restore:
        if not args.target:
            return fail("--target path is required for restore mode", usage=True)
        action, prefix = _run_restore, "Error during restore"
    else:
        action, prefix = _run_backup, "Error during backup"

    try:
        action(args)
    except _CommandError as exc:
        sys.stderr.write(f"{prefix}: {exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())