"""
reconcile.py — Verify a live tree against a snapshot

The engine keeps one expectation frame per directory on the walk's current
path. Each frame starts as the snapshot's children of that directory and
shrinks as live entries are matched; what is left when the directory is
left was recorded but is gone.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from treemirror.digest import compute_file_record
from treemirror.errors import PathEncodingError
from treemirror.events import (
    DirectoryNotFound,
    FieldMismatch,
    FileNotFound,
    MismatchEvent,
    MismatchField,
    MismatchListener,
    NewFileFound,
)
from treemirror.model import DirectoryExpectation, FileKind, FileRecord
from treemirror.pathing import from_store_key, join_relpath, split_relpath, to_store_key
from treemirror.walker import TreeObserver, walk

logger = logging.getLogger("treemirror.reconcile")


@dataclass
class VerifyStats:
    """Counters for one verification run."""
    dirs_checked: int = 0
    files_checked: int = 0
    files_matched: int = 0
    files_mismatched: int = 0
    new_files: int = 0
    missing_files: int = 0
    missing_dirs: int = 0
    field_mismatches: int = 0

    @property
    def mismatch_count(self) -> int:
        return self.new_files + self.missing_files + self.missing_dirs + self.field_mismatches

    @property
    def clean(self) -> bool:
        return self.mismatch_count == 0


def compare_records(expected: FileRecord, actual: FileRecord) -> List[Tuple[MismatchField, object, object]]:
    """
    Compare two records field by field in MismatchField order.

    A kind difference is reported alone: size, mtime and digest are not
    comparable between a file and a directory.
    """
    if expected.kind != actual.kind:
        return [(MismatchField.KIND, expected.kind, actual.kind)]
    if expected.kind is FileKind.DIRECTORY:
        return []
    diffs = []
    if expected.size != actual.size:
        diffs.append((MismatchField.SIZE, expected.size, actual.size))
    if expected.mtime_ms != actual.mtime_ms:
        diffs.append((MismatchField.MTIME, expected.mtime_ms, actual.mtime_ms))
    if expected.digest != actual.digest:
        diffs.append((MismatchField.DIGEST, expected.digest, actual.digest))
    return diffs


def _store_key_or_none(native: str) -> Optional[str]:
    try:
        return to_store_key(native)
    except PathEncodingError:
        logger.warning("⚠️ Cannot convert %r to UTF-8, treating it as unknown", native)
        return None


class ReconciliationEngine(TreeObserver):
    """TreeObserver that reconciles visited entries with a snapshot."""

    def __init__(self, store, listener: MismatchListener, directory_set: Optional[Set[str]] = None):
        self.store = store
        self.listener = listener
        # Directories recorded in the snapshot and not yet entered.
        self.pending_dirs = store.get_directory_set() if directory_set is None else directory_set
        # (store key of the directory or None, expectation) per walk level.
        self._frames: List[Tuple[Optional[str], DirectoryExpectation]] = []
        self.stats = VerifyStats()

    def _emit(self, event: MismatchEvent):
        if isinstance(event, NewFileFound):
            self.stats.new_files += 1
        elif isinstance(event, FileNotFound):
            self.stats.missing_files += 1
        elif isinstance(event, DirectoryNotFound):
            self.stats.missing_dirs += 1
        else:
            self.stats.field_mismatches += 1
        self.listener(event)

    def enter_directory(self, rel_dir: str) -> None:
        self.stats.dirs_checked += 1
        dir_key = _store_key_or_none(rel_dir)

        if self._frames:
            self._reconcile_subdirectory(rel_dir, dir_key)

        if dir_key is None:
            self._frames.append((None, {}))
            return
        self.pending_dirs.discard(dir_key)
        self._frames.append((dir_key, self.store.get_directory_expectation(dir_key)))

    def _reconcile_subdirectory(self, rel_dir: str, dir_key: Optional[str]):
        parent, name = split_relpath(rel_dir)
        _, parent_frame = self._frames[-1]
        expected = None
        if dir_key is not None:
            expected = parent_frame.pop(split_relpath(dir_key)[1], None)

        if expected is None:
            self._emit(NewFileFound(parent, name, FileKind.DIRECTORY))
        elif not expected.is_dir:
            self.stats.files_mismatched += 1
            self._emit(FieldMismatch(parent, name, MismatchField.KIND, expected.kind, FileKind.DIRECTORY))

    def _drop_pending_subtree(self, dir_key: str):
        prefix = dir_key + "/"
        self.pending_dirs.difference_update(
            [path for path in self.pending_dirs if path == dir_key or path.startswith(prefix)]
        )

    def visit_file(self, abs_dir: str, rel_dir: str, name: str) -> None:
        logger.debug("Checking the file '%s'...", join_relpath(rel_dir, name))
        self.stats.files_checked += 1
        dir_key, frame = self._frames[-1]

        key = _store_key_or_none(name)
        expected = None if key is None else frame.pop(key, None)
        if expected is None:
            self._emit(NewFileFound(rel_dir, name, FileKind.FILE))
            return

        if expected.is_dir:
            # The kind mismatch accounts for the recorded directory and its subtree.
            self._drop_pending_subtree(join_relpath(dir_key, key))
            self.stats.files_mismatched += 1
            self._emit(FieldMismatch(rel_dir, name, MismatchField.KIND, FileKind.DIRECTORY, FileKind.FILE))
            return

        actual = compute_file_record(os.path.join(abs_dir, name))
        diffs = compare_records(expected, actual)
        if not diffs:
            self.stats.files_matched += 1
            return
        self.stats.files_mismatched += 1
        for field, expected_value, actual_value in diffs:
            self._emit(FieldMismatch(rel_dir, name, field, expected_value, actual_value))

    def leave_directory(self, rel_dir: str) -> None:
        dir_key, frame = self._frames.pop()
        for key in sorted(frame):
            record = frame[key]
            if record.is_dir and join_relpath(dir_key, key) in self.pending_dirs:
                # reported as DirectoryNotFound by finish()
                continue
            self._emit(FileNotFound(rel_dir, from_store_key(key), record.kind))

    def finish(self) -> VerifyStats:
        """Report recorded directories the walk never entered."""
        if self._frames:
            raise RuntimeError(f"Unbalanced walk: {len(self._frames)} directory frame(s) left open")
        for path in sorted(self.pending_dirs):
            self._emit(DirectoryNotFound(from_store_key(path)))
        self.pending_dirs.clear()
        return self.stats


def verify_tree(root_path, store, listener: MismatchListener) -> VerifyStats:
    """
    Verify ROOT_PATH against the snapshot in STORE.

    Every discrepancy is passed to LISTENER as it is found; fatal I/O and
    store errors propagate as MirrorError subclasses.
    """
    engine = ReconciliationEngine(store, listener, store.get_directory_set())
    walk(root_path, engine)
    return engine.finish()
