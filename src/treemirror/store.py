"""
store.py — SQLite-backed snapshot store

One row per known directory and one row per (directory, child) pair. The
core only needs the directory set, per-directory expectations and the two
upserts; the rest serves the CLI.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterator, Set, Tuple

from treemirror.errors import StoreError, StoreOpenFailure
from treemirror.migrate import apply_migrations
from treemirror.model import FileKind, FileRecord
from treemirror.pathing import split_relpath

logger = logging.getLogger("treemirror.store")

COMMIT_BATCH = 500


def _row_to_record(row) -> FileRecord:
    kind = FileKind(row["kind"])
    if kind is FileKind.DIRECTORY:
        return FileRecord.directory()
    return FileRecord(kind=kind, size=row["size"], mtime_ms=row["mtime_ms"], digest=row["md5"])


def _is_snapshot_db(conn) -> bool:
    """True if CONN already holds the snapshot tables."""
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    return {"directories", "entries"} <= tables


class SnapshotStore:
    """Handle on an open snapshot database."""

    def __init__(self, conn: sqlite3.Connection, location: Path):
        self.conn = conn
        self.location = location
        self._pending = 0

    @classmethod
    def open(cls, location, create_if_missing: bool = True) -> "SnapshotStore":
        location = Path(location)
        if not location.exists() and not create_if_missing:
            raise StoreOpenFailure(f"Snapshot database not found: {location}")
        conn = None
        try:
            location.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(location))
            conn.row_factory = sqlite3.Row
            if not create_if_missing and not _is_snapshot_db(conn):
                raise StoreOpenFailure(f"Not a treemirror snapshot database: {location}")
            apply_migrations(conn)
        except (OSError, sqlite3.Error, StoreOpenFailure) as e:
            if conn is not None:
                conn.close()
            if isinstance(e, StoreOpenFailure):
                raise
            raise StoreOpenFailure(f"Unable to open snapshot database '{location}': {e}") from e
        logger.debug("Opened snapshot store %s", location)
        return cls(conn, location)

    def close(self):
        if self.conn is None:
            return
        conn, self.conn = self.conn, None
        try:
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Unable to commit snapshot database '{self.location}': {e}") from e
        finally:
            conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            # Log close errors so the original exception propagates.
            try:
                self.close()
            except StoreError as e:
                logger.error("%s", e)
        return False

    def _execute(self, sql, params=()):
        if self.conn is None:
            raise StoreError("Snapshot store is closed")
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"Snapshot database error: {e}") from e

    def _wrote(self):
        self._pending += 1
        if self._pending >= COMMIT_BATCH:
            self.commit()

    def commit(self):
        try:
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Unable to commit snapshot database '{self.location}': {e}") from e
        self._pending = 0

    # Queries used by verification.

    def get_directory_set(self) -> Set[str]:
        return {row["path"] for row in self._execute("SELECT path FROM directories")}

    def get_directory_expectation(self, dir_path: str) -> Dict[str, FileRecord]:
        rows = self._execute(
            "SELECT name, kind, size, mtime_ms, md5 FROM entries WHERE dir_path = ?",
            (dir_path,),
        ).fetchall()
        return {row["name"]: _row_to_record(row) for row in rows}

    # Updates used by snapshot creation.

    def upsert_file_record(self, dir_path: str, name: str, record: FileRecord):
        self._execute("""
            INSERT INTO entries (dir_path, name, kind, size, mtime_ms, md5)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (dir_path, name) DO UPDATE SET
                kind = excluded.kind,
                size = excluded.size,
                mtime_ms = excluded.mtime_ms,
                md5 = excluded.md5
        """, (dir_path, name, record.kind.value, record.size, record.mtime_ms, record.digest))
        self._wrote()

    def upsert_directory(self, dir_path: str):
        """Register DIR_PATH and list it as a directory child of its parent."""
        self._execute("INSERT OR IGNORE INTO directories (path) VALUES (?)", (dir_path,))
        if dir_path:
            parent, name = split_relpath(dir_path)
            self.upsert_file_record(parent, name, FileRecord.directory())
        else:
            self._wrote()

    # Maintenance and reporting.

    def reset(self):
        """Drop every recorded directory and entry, keeping the schema."""
        self._execute("DELETE FROM entries")
        self._execute("DELETE FROM directories")
        self._execute("DELETE FROM snapshot_meta")
        self.commit()

    def set_meta(self, key: str, value):
        self._execute(
            "INSERT INTO snapshot_meta (key, value) VALUES (?, ?) "
            "ON CONFLICT (key) DO UPDATE SET value = excluded.value",
            (key, None if value is None else str(value)),
        )
        self._wrote()

    def get_meta(self) -> Dict[str, str]:
        return {row["key"]: row["value"] for row in self._execute("SELECT key, value FROM snapshot_meta")}

    def counts(self) -> Tuple[int, int]:
        """Return (directories, files) recorded in the snapshot."""
        dirs = self._execute("SELECT COUNT(*) FROM directories").fetchone()[0]
        files = self._execute("SELECT COUNT(*) FROM entries WHERE kind = 'file'").fetchone()[0]
        return dirs, files

    def iter_records(self) -> Iterator[Tuple[str, str, FileRecord]]:
        """Yield (dir_path, name, record) for every entry, ordered by path."""
        rows = self._execute(
            "SELECT dir_path, name, kind, size, mtime_ms, md5 FROM entries ORDER BY dir_path, name"
        )
        for row in rows:
            yield row["dir_path"], row["name"], _row_to_record(row)
