import io
import json
import os

import pytest

from chunkvault.backup_engine import BackupEngine
from chunkvault.compressor import compress
from chunkvault.restore import RestoreEngine, RestoreError


def _backup(src, backup):
    engine = BackupEngine(src, backup)
    engine.initialize()
    engine.perform_full_backup()
    return engine


@pytest.fixture
def layout(tmp_path):
    src = tmp_path / "src"
    backup = tmp_path / "backup"
    target = tmp_path / "target"
    src.mkdir()
    return src, backup, target


def _chunk_files(backup):
    return sorted(p for p in backup.iterdir() if p.name.startswith("chunk_"))


def test_restore_single_file_round_trip(layout):
    src, backup, target = layout
    (src / "a.txt").write_bytes(b"hello backup")
    _backup(src, backup)

    engine = RestoreEngine(backup, target)
    engine.initialize()
    restored = engine.restore_all()

    assert restored == ["a.txt"]
    assert (target / "a.txt").read_bytes() == b"hello backup"


def test_restore_nested_file_and_mod_time(layout):
    src, backup, target = layout
    (src / "sub").mkdir()
    original = src / "sub" / "b.bin"
    original.write_bytes(bytes(range(256)))
    _backup(src, backup)

    engine = RestoreEngine(backup, target)
    engine.initialize()
    engine.restore_all()

    restored = target / "sub" / "b.bin"
    assert restored.read_bytes() == bytes(range(256))
    assert abs(os.stat(restored).st_mtime - os.stat(original).st_mtime) < 0.01


def test_initialize_creates_target(layout):
    src, backup, target = layout
    (src / "a.txt").write_bytes(b"x")
    _backup(src, backup)
    engine = RestoreEngine(backup, target)
    engine.initialize()
    assert target.is_dir()


def test_deleted_file_is_not_restored(layout):
    src, backup, target = layout
    (src / "keep.txt").write_bytes(b"keep")
    (src / "gone.txt").write_bytes(b"gone")
    _backup(src, backup)
    (src / "gone.txt").unlink()
    _backup(src, backup)

    engine = RestoreEngine(backup, target)
    engine.initialize()
    restored = engine.restore_all()

    assert restored == ["keep.txt"]
    assert not (target / "gone.txt").exists()


def test_validate_counts_chunks(layout):
    src, backup, _ = layout
    (src / "a.txt").write_bytes(b"abc")
    _backup(src, backup)
    engine = RestoreEngine(backup)
    engine.initialize_without_target()
    assert engine.validate_backup() == len(_chunk_files(backup))


def test_missing_chunk_fails_validation(layout):
    src, backup, target = layout
    (src / "a.txt").write_bytes(b"abc")
    _backup(src, backup)
    for chunk in _chunk_files(backup):
        chunk.unlink()

    engine = RestoreEngine(backup, target)
    engine.initialize()
    with pytest.raises(RestoreError, match="chunk file missing"):
        engine.validate_backup()
    with pytest.raises(RestoreError, match="chunk file missing"):
        engine.restore_all()


def test_corrupt_chunk_skips_file(layout):
    src, backup, target = layout
    (src / "a.txt").write_bytes(b"original")
    _backup(src, backup)
    for chunk in _chunk_files(backup):
        chunk.write_bytes(compress(b"tampered"))

    engine = RestoreEngine(backup, target)
    engine.initialize()
    assert engine.restore_all() == []
    assert not (target / "a.txt").exists()


def test_undecodable_chunk_skips_file(layout):
    src, backup, target = layout
    (src / "a.txt").write_bytes(b"original")
    _backup(src, backup)
    for chunk in _chunk_files(backup):
        chunk.write_bytes(b"not gzip")

    engine = RestoreEngine(backup, target)
    engine.initialize()
    assert engine.restore_all() == []


def test_bad_metadata_raises(tmp_path):
    (tmp_path / "metadata.json").write_text(json.dumps([1, 2]))
    engine = RestoreEngine(tmp_path)
    with pytest.raises(RestoreError, match="failed to load backup metadata"):
        engine.initialize_without_target()


def test_list_files_reports_status_and_summary(layout):
    src, backup, _ = layout
    (src / "keep.txt").write_bytes(b"12345")
    (src / "gone.txt").write_bytes(b"x")
    _backup(src, backup)
    (src / "gone.txt").unlink()
    _backup(src, backup)

    engine = RestoreEngine(backup)
    engine.initialize_without_target()
    out = io.StringIO()
    engine.list_files(out)
    text = out.getvalue()

    lines = text.splitlines()
    keep_line = next(line for line in lines if line.endswith("keep.txt"))
    gone_line = next(line for line in lines if line.endswith("gone.txt"))
    assert keep_line.startswith("ACTIVE ")
    assert " 5 bytes" in keep_line
    assert gone_line.startswith("DELETED ")
    assert "Summary: 1 active files, 1 deleted files" in text
    assert f"Total chunks: {len(_chunk_files(backup))}" in text


def test_list_files_empty_backup(tmp_path):
    engine = RestoreEngine(tmp_path)
    engine.initialize_without_target()
    out = io.StringIO()
    engine.list_files(out)
    text = out.getvalue()
    assert "Total chunks: 0" in text
    assert "Last updated: 0001-01-01T00:00:00Z" in text
    assert "Summary: 0 active files, 0 deleted files" in text