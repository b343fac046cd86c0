import json
import os

import pytest

from chunkvault.metadata import METADATA_FILENAME, MetadataManager
from chunkvault.models import ZERO_TIME, ChunkInfo, FileInfo, Operation


@pytest.fixture
def watch(tmp_path):
    root = tmp_path / "watch"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha")
    (root / "sub" / "b.txt").write_bytes(b"beta")
    return root


@pytest.fixture
def manager(tmp_path):
    return MetadataManager(tmp_path / "backup")


def _record(manager, changes):
    for change in changes:
        if change.file_info is not None:
            manager.update_file_info(change.path, change.file_info)


def test_load_missing_file_keeps_defaults(manager):
    manager.load()
    snap = manager.snapshot()
    assert snap.version == "1.0"
    assert snap.files == {}
    assert snap.chunks == []


def test_save_and_load_round_trip(tmp_path, manager):
    manager.update_file_info("x.bin", FileInfo(path="x.bin", size=3, hash="h", chunk_refs=[1]))
    manager.add_chunk(ChunkInfo(id=1, filename="chunk_000001.gz", size=3, hash="h", compressed_size=20))
    manager.save()

    other = MetadataManager(tmp_path / "backup")
    other.load()
    snap = other.snapshot()
    assert snap.files["x.bin"].chunk_refs == [1]
    assert snap.files["x.bin"].size == 3
    assert snap.chunks[0].filename == "chunk_000001.gz"
    assert snap.updated_at > ZERO_TIME


def test_save_writes_json_without_temp_file(tmp_path, manager):
    manager.save()
    backup = tmp_path / "backup"
    data = json.loads((backup / METADATA_FILENAME).read_text())
    assert data["version"] == "1.0"
    assert not (backup / (METADATA_FILENAME + ".tmp")).exists()

    snap = manager.snapshot()
    assert snap.updated_at > ZERO_TIME
    assert snap.version == data["version"]


def test_load_rejects_malformed_file(tmp_path, manager):
    backup = tmp_path / "backup"
    backup.mkdir()
    (backup / METADATA_FILENAME).write_text("{not json")
    with pytest.raises(ValueError):
        manager.load()


def test_get_file_info_missing_returns_none(manager):
    assert manager.get_file_info("nope") is None


def test_get_file_info_returns_copy(manager):
    manager.update_file_info("f", FileInfo(path="f"))
    info = manager.get_file_info("f")
    info.chunk_refs.append(7)
    assert manager.get_file_info("f").chunk_refs == []


def test_snapshot_is_independent(manager):
    manager.update_file_info("f", FileInfo(path="f"))
    snap = manager.snapshot()
    snap.files.clear()
    snap.chunks.append(ChunkInfo(1, "c", 0, "", 0))
    assert "f" in manager.snapshot().files
    assert manager.snapshot().chunks == []


def test_mark_file_deleted(manager):
    manager.update_file_info("f", FileInfo(path="f"))
    manager.mark_file_deleted("f")
    manager.mark_file_deleted("unknown")
    assert manager.get_file_info("f").is_deleted is True
    assert manager.get_file_info("unknown") is None


def test_detect_changes_reports_new_files(watch, manager):
    changes = manager.detect_changes(watch)
    paths = {c.path for c in changes}
    assert paths == {"a.txt", os.path.join("sub", "b.txt")}
    assert all(c.operation == Operation.CREATE for c in changes)
    sizes = {c.path: c.file_info.size for c in changes}
    assert sizes["a.txt"] == len(b"alpha")


def test_detect_changes_nothing_after_recording(watch, manager):
    _record(manager, manager.detect_changes(watch))
    assert manager.detect_changes(watch) == []


def test_detect_changes_survives_save_and_load(tmp_path, watch, manager):
    _record(manager, manager.detect_changes(watch))
    manager.save()
    other = MetadataManager(tmp_path / "backup")
    other.load()
    assert other.detect_changes(watch) == []


def test_detect_changes_modify(watch, manager):
    _record(manager, manager.detect_changes(watch))
    (watch / "a.txt").write_bytes(b"changed content")
    changes = manager.detect_changes(watch)
    assert [(c.path, c.operation) for c in changes] == [("a.txt", Operation.MODIFY)]
    assert changes[0].file_info.size == len(b"changed content")


def test_detect_changes_delete(watch, manager):
    _record(manager, manager.detect_changes(watch))
    (watch / "a.txt").unlink()
    changes = manager.detect_changes(watch)
    assert [(c.path, c.operation, c.file_info) for c in changes] == [
        ("a.txt", Operation.DELETE, None)
    ]


def test_deleted_record_is_not_reported_again(watch, manager):
    _record(manager, manager.detect_changes(watch))
    manager.mark_file_deleted("a.txt")
    assert manager.detect_changes(watch) == []