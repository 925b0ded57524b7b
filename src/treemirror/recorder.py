"""
recorder.py — Record a directory tree into a snapshot store
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from treemirror import __version__
from treemirror.digest import compute_file_record
from treemirror.errors import PathEncodingError
from treemirror.model import FileRecord
from treemirror.pathing import join_relpath, to_store_key
from treemirror.walker import TreeObserver, walk

logger = logging.getLogger("treemirror.recorder")


@dataclass
class RecordStats:
    """Statistics for a snapshot creation run."""
    dirs_recorded: int = 0
    files_recorded: int = 0
    bytes_hashed: int = 0
    paths_skipped: int = 0


class SnapshotRecorder(TreeObserver):
    """TreeObserver that upserts every visited directory and file into a store."""

    def __init__(self, store, progress: Optional[Callable[[FileRecord], None]] = None):
        self.store = store
        self.progress = progress
        self.stats = RecordStats()

    def _skip(self, native: str):
        logger.error("❌ Cannot convert %r to UTF-8, not recording it", native)
        self.stats.paths_skipped += 1

    def enter_directory(self, rel_dir: str) -> None:
        try:
            dir_key = to_store_key(rel_dir)
        except PathEncodingError:
            self._skip(rel_dir)
            return
        self.store.upsert_directory(dir_key)
        self.stats.dirs_recorded += 1

    def visit_file(self, abs_dir: str, rel_dir: str, name: str) -> None:
        try:
            dir_key = to_store_key(rel_dir)
            name_key = to_store_key(name)
        except PathEncodingError:
            self._skip(join_relpath(rel_dir, name))
            return

        record = compute_file_record(os.path.join(abs_dir, name))
        self.store.upsert_file_record(dir_key, name_key, record)
        self.stats.files_recorded += 1
        self.stats.bytes_hashed += record.size
        if self.progress is not None:
            self.progress(record)

    def leave_directory(self, rel_dir: str) -> None:
        pass


def create_snapshot(root_path, store, progress=None, replace: bool = False) -> RecordStats:
    """
    Record ROOT_PATH into STORE.

    Records are upserted, so running twice over the same store only adds or
    refreshes entries; pass replace=True to drop the previous snapshot first.
    """
    root_path = Path(root_path)
    if replace:
        logger.info("🧹 Dropping previous snapshot records")
        store.reset()

    store.set_meta("root_path", str(root_path.resolve()))
    store.set_meta("created_at", datetime.now(timezone.utc).isoformat())
    store.set_meta("version", __version__)

    recorder = SnapshotRecorder(store, progress=progress)
    walk(root_path, recorder)
    store.commit()
    return recorder.stats
