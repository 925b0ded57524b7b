"""
digest.py — File metadata and streaming MD5 digests
"""

import hashlib
import os

from treemirror.errors import OpenFailure, ReadFailure
from treemirror.model import FileKind, FileRecord

CHUNK_SIZE = 4096


def _read_chunks(f, path):
    while True:
        try:
            chunk = f.read(CHUNK_SIZE)
        except OSError as e:
            raise ReadFailure.from_oserror(path, e) from e
        if not chunk:
            return
        yield chunk


def md5_file(path) -> str:
    """Stream PATH through MD5 in CHUNK_SIZE reads and return the hex digest."""
    try:
        f = open(path, "rb")
    except OSError as e:
        raise OpenFailure.from_oserror(path, e) from e
    h = hashlib.md5()
    with f:
        for chunk in _read_chunks(f, path):
            h.update(chunk)
    return h.hexdigest()


def compute_file_record(path) -> FileRecord:
    """
    Build the FileRecord for a regular file on disk.

    Size and mtime come from stat, not from the bytes read, so they are
    captured before hashing starts.
    """
    try:
        st = os.stat(path)
    except OSError as e:
        raise OpenFailure.from_oserror(path, e) from e
    return FileRecord(
        kind=FileKind.FILE,
        size=st.st_size,
        mtime_ms=st.st_mtime_ns // 1_000_000,
        digest=md5_file(path),
    )
