"""
Tests for verifying a live tree against a recorded snapshot.
"""

import hashlib
import os
import shutil
from collections import Counter

import pytest

from treemirror.events import DirectoryNotFound, FieldMismatch, FileNotFound, MismatchField, NewFileFound
from treemirror.model import FileKind, FileRecord
from treemirror.reconcile import ReconciliationEngine, compare_records, verify_tree
from treemirror.recorder import create_snapshot
from treemirror.report import MismatchCollector
from treemirror.store import SnapshotStore


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"0123456789")
    (root / "b.txt").write_bytes(b"bee")
    (root / "sub" / "c.txt").write_bytes(b"sea")
    return root


@pytest.fixture
def store(tmp_path):
    s = SnapshotStore.open(tmp_path / "snapshot.db")
    yield s
    s.close()


def _verify(root, store):
    collector = MismatchCollector()
    stats = verify_tree(root, store, collector)
    return collector, stats


def _rewrite_keep_mtime(path, data):
    st = os.stat(path)
    path.write_bytes(data)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns))


def test_round_trip_yields_no_events(root, store):
    create_snapshot(root, store)

    collector, stats = _verify(root, store)

    assert collector.events == []
    assert stats.clean
    assert stats.files_checked == 3
    assert stats.files_matched == 3
    assert stats.dirs_checked == 2


def test_size_and_digest_change(root, store):
    create_snapshot(root, store)
    old_digest = hashlib.md5(b"0123456789").hexdigest()
    new_data = b"abcdefghijkl"
    _rewrite_keep_mtime(root / "a.txt", new_data)

    collector, stats = _verify(root, store)

    assert collector.events == [
        FieldMismatch("", "a.txt", MismatchField.SIZE, 10, 12),
        FieldMismatch("", "a.txt", MismatchField.DIGEST, old_digest, hashlib.md5(new_data).hexdigest()),
    ]
    assert collector.new_files == []
    assert collector.missing_files == []
    assert stats.files_mismatched == 1


def test_mtime_only_change(root, store):
    create_snapshot(root, store)
    st = os.stat(root / "b.txt")
    os.utime(root / "b.txt", ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))

    collector, _ = _verify(root, store)

    assert len(collector.events) == 1
    event = collector.events[0]
    assert event.field is MismatchField.MTIME
    assert event.actual - event.expected == 5000


def test_single_byte_content_change(root, store):
    create_snapshot(root, store)
    _rewrite_keep_mtime(root / "sub" / "c.txt", b"sex")

    collector, _ = _verify(root, store)

    assert [(e.path, e.field) for e in collector.events] == [("sub/c.txt", MismatchField.DIGEST)]


def test_all_fields_reported_in_fixed_order(root, store):
    create_snapshot(root, store)
    (root / "b.txt").write_bytes(b"a longer body")
    os.utime(root / "b.txt", ns=(0, 1_000_000_000))

    collector, _ = _verify(root, store)

    assert [e.field for e in collector.events] == [
        MismatchField.SIZE, MismatchField.MTIME, MismatchField.DIGEST,
    ]


def test_rename_is_one_missing_plus_one_new(root, store):
    create_snapshot(root, store)
    os.rename(root / "a.txt", root / "renamed.txt")

    collector, _ = _verify(root, store)

    assert collector.missing_files == [FileNotFound("", "a.txt", FileKind.FILE)]
    assert collector.new_files == [NewFileFound("", "renamed.txt", FileKind.FILE)]
    assert collector.field_mismatches == []
    assert len(collector.events) == 2


def test_file_replaced_by_directory_is_a_single_kind_mismatch(root, store):
    create_snapshot(root, store)
    (root / "b.txt").unlink()
    (root / "b.txt").mkdir()

    collector, stats = _verify(root, store)

    assert collector.events == [
        FieldMismatch("", "b.txt", MismatchField.KIND, FileKind.FILE, FileKind.DIRECTORY),
    ]
    assert stats.files_mismatched == 1
    assert stats.field_mismatches == 1


def test_directory_replaced_by_file_is_a_single_kind_mismatch(root, store):
    (root / "sub" / "inner").mkdir()
    (root / "sub" / "inner" / "d.txt").write_bytes(b"dee")
    create_snapshot(root, store)
    shutil.rmtree(root / "sub")
    (root / "sub").write_bytes(b"now a file")

    collector, stats = _verify(root, store)

    assert collector.events == [
        FieldMismatch("", "sub", MismatchField.KIND, FileKind.DIRECTORY, FileKind.FILE),
    ]
    assert stats.missing_dirs == 0
    assert stats.files_mismatched == 1


def test_missing_directory_reported_once(root, store):
    create_snapshot(root, store)
    shutil.rmtree(root / "sub")

    collector, stats = _verify(root, store)

    assert collector.events == [DirectoryNotFound("sub")]
    assert stats.missing_dirs == 1
    assert stats.missing_files == 0


def test_nested_missing_directories_are_each_reported(root, store):
    (root / "sub" / "inner").mkdir()
    (root / "sub" / "inner" / "d.txt").write_bytes(b"dee")
    create_snapshot(root, store)
    shutil.rmtree(root / "sub")

    collector, _ = _verify(root, store)

    assert collector.events == [DirectoryNotFound("sub"), DirectoryNotFound("sub/inner")]


def test_new_directory_and_its_files_are_new(root, store):
    create_snapshot(root, store)
    (root / "fresh").mkdir()
    (root / "fresh" / "n.txt").write_bytes(b"new")

    collector, _ = _verify(root, store)

    assert Counter(collector.events) == Counter([
        NewFileFound("", "fresh", FileKind.DIRECTORY),
        NewFileFound("fresh", "n.txt", FileKind.FILE),
    ])


def test_empty_directories_are_tracked(root, store):
    (root / "empty").mkdir()
    create_snapshot(root, store)

    collector, _ = _verify(root, store)
    assert collector.events == []

    (root / "empty").rmdir()
    collector, _ = _verify(root, store)
    assert collector.events == [DirectoryNotFound("empty")]


def test_directory_accounting_is_complete(root, store):
    (root / "d.txt").write_bytes(b"dee")
    create_snapshot(root, store)
    (root / "d.txt").unlink()
    (root / "e.txt").write_bytes(b"eee")
    (root / "f.txt").write_bytes(b"eff")

    collector, stats = _verify(root, store)

    live = {"a.txt", "b.txt", "e.txt", "f.txt"}
    expected = {"a.txt", "b.txt", "d.txt"}
    root_new = [e for e in collector.new_files if e.dir_path == ""]
    root_missing = [e for e in collector.missing_files if e.dir_path == ""]
    matched_in_root = 2
    assert len(root_new) + matched_in_root + len(root_missing) == len(live | expected)
    assert stats.files_matched == 3


def test_missing_files_reported_in_name_order(root, store):
    create_snapshot(root, store)
    (root / "b.txt").unlink()
    (root / "a.txt").unlink()

    collector, _ = _verify(root, store)

    assert collector.events == [FileNotFound("", "a.txt"), FileNotFound("", "b.txt")]


@pytest.mark.skipif(os.name == "nt", reason="POSIX byte-oriented file names only")
def test_undecodable_name_is_reported_as_new(root, store):
    create_snapshot(root, store)
    try:
        fd = os.open(os.path.join(os.fsencode(root), b"bad\xff"), os.O_CREAT | os.O_WRONLY)
    except OSError:
        pytest.skip("file system rejects non-UTF-8 names")
    os.close(fd)

    collector, _ = _verify(root, store)

    assert collector.events == [NewFileFound("", os.fsdecode(b"bad\xff"), FileKind.FILE)]


class _DictStore:
    def __init__(self, dirs, entries):
        self.dirs = dirs
        self.entries = entries

    def get_directory_set(self):
        return set(self.dirs)

    def get_directory_expectation(self, dir_path):
        return dict(self.entries.get(dir_path, {}))


def test_engine_works_against_any_store(tmp_path):
    (tmp_path / "x.txt").write_bytes(b"x")
    store = _DictStore(
        dirs=["", "gone"],
        entries={"": {"gone": FileRecord.directory(), "y.txt": FileRecord(FileKind.FILE, 1, 0, "0" * 32)}},
    )
    collector = MismatchCollector()
    engine = ReconciliationEngine(store, collector)

    engine.enter_directory("")
    engine.visit_file(str(tmp_path), "", "x.txt")
    engine.leave_directory("")
    stats = engine.finish()

    assert collector.events == [
        NewFileFound("", "x.txt"),
        FileNotFound("", "y.txt"),
        DirectoryNotFound("gone"),
    ]
    assert stats.mismatch_count == 3


def test_finish_rejects_unbalanced_walk():
    engine = ReconciliationEngine(_DictStore([""], {}), MismatchCollector())
    engine.enter_directory("")

    with pytest.raises(RuntimeError):
        engine.finish()


def test_compare_records_kind_suppresses_other_fields():
    expected = FileRecord(FileKind.FILE, 1, 2, "a" * 32)

    assert compare_records(expected, FileRecord.directory()) == [
        (MismatchField.KIND, FileKind.FILE, FileKind.DIRECTORY),
    ]
    assert compare_records(expected, expected) == []
