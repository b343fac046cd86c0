# chunkvault

chunkvault keeps a backup of a directory in a second directory. It runs an initial full backup when it starts. It then runs another full backup at a fixed interval, and it watches the directory for changes in between. Each full backup walks the directory. It compares every file's SHA-256 hash and modification time with what was recorded before. Files that are new or changed are packed into chunks. A chunk holds at most 5 MB, except that a single file larger than that gets a chunk of its own. Each chunk is compressed with gzip. A `metadata.json` index records every file's path, size, modification time, hash and chunk references. You can later list, verify or restore the backup.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

Each run of `chunkvault` performs exactly one operation. `--backup` is always required. If it is missing, or if no operation or more than one is given, the command prints an error and usage examples and exits with status 1.

### Watch and back up

This command runs a full backup every 60 seconds. The default interval is 300 seconds, and the value must be positive. Stop the command with Ctrl+C or SIGTERM.

```
chunkvault --watch /path/to/watch --backup /path/to/backup --refresh 60
```

The backup directory is created if it does not exist. If it already holds a backup, the existing metadata is loaded and new chunks are numbered after the highest existing one.

### Restore

This command creates the target directory if needed and prints the file listing. It then writes every file that is not marked as deleted, and restores each file's modification time. A file that cannot be restored is logged and skipped.

```
chunkvault --restore --backup /path/to/backup --target /path/to/restore
```

### List

This command prints the backup's creation and update times and the number of chunks. It then prints one line per recorded file, sorted by path: `ACTIVE` or `DELETED`, the size, the modification time and the path. A summary line follows.

```
chunkvault --list --backup /path/to/backup
```

### Verify

This command checks that every chunk file named in the metadata exists on disk.

```
chunkvault --verify --backup /path/to/backup
```

## Backup layout

A backup directory holds these files:

- `metadata.json`: the format version, the creation and last-update times as RFC 3339 text, the file table keyed by relative path, and the chunk table. The table records each chunk's id, file name, uncompressed size, SHA-256 hash and compressed size. The file is written through a temporary file and then renamed into place.
- `chunk_000001.gz`, `chunk_000002.gz`, …: gzip-compressed chunks, numbered in the order they were created.

Deleted files stay in the metadata, marked as deleted. They are skipped during a restore.

## Library use

The same parts can be used from Python:

```python
from chunkvault.backup_engine import BackupEngine
from chunkvault.restore import RestoreEngine

engine = BackupEngine("/path/to/watch", "/path/to/backup")
engine.initialize()
engine.perform_full_backup()

restorer = RestoreEngine("/path/to/backup", "/path/to/restore")
restorer.initialize()
restored_paths = restorer.restore_all()
```

Errors are raised as `BackupError` (`chunkvault.backup_engine`) and `RestoreError` (`chunkvault.restore`).

### Other modules

- `chunkvault.chunker`: `Chunker.create_chunks` packs files into `ChunkData` records. `Chunker.extract_file_from_chunk` returns one file's bytes and checks its bounds and hash. It raises `ChunkError` when a check fails.
- `chunkvault.compressor`: `compress` and `decompress` for gzip data. `decompress` raises `ValueError` on invalid input.
- `chunkvault.hashing`: `calculate_file_hash` and `calculate_data_hash` return hex SHA-256 digests.
- `chunkvault.metadata`: `MetadataManager` loads and saves `metadata.json`. Its `detect_changes` method returns `CREATE`, `MODIFY` and `DELETE` changes for a directory.
- `chunkvault.watcher`: `Watcher` uses watchdog to watch a directory tree. It puts debounced `FileEvent` records on its `changes` queue, and it also puts a `SCAN` event for every file at its scan interval. `Debouncer` is the timer used for this.
- `chunkvault.models`: the record types `Operation`, `ChunkInfo`, `FileInfo`, `BackupMetadata`, `FileEvent` and `FileChange`.
- `chunkvault.filesystem`: path validation and directory helpers.

## Limitations

- Only full backups store file contents: the initial one and the periodic ones set by `--refresh`. Events from the watcher are passed to the backup engine without file details, so a change is stored at the next full backup, not when it happens.
- The metadata records where each file lies inside a chunk's data only while the chunk is being built. A restore writes each file from the whole contents of the chunks it references. When a chunk holds several files, each of those restored files receives the data of all of them.
- Verification only checks that chunk files exist. Chunk hashes are checked only during a restore.
- Old chunks are never removed or compacted.