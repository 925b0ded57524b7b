"""Conversion between filesystem-native names and the store's UTF-8 keys."""

import os
from pathlib import Path

from treemirror.errors import PathEncodingError

SEP = "/"


def to_store_key(native: str) -> str:
    """
    Convert a native name or relative path (as returned by os.scandir) to
    the store's UTF-8 text.

    Undecodable bytes surface as surrogate escapes in native names; those
    have no UTF-8 form and raise PathEncodingError.
    """
    raw = os.fsencode(native)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PathEncodingError(native) from e


def from_store_key(key: str) -> str:
    """Convert a store key back to a native name."""
    return os.fsdecode(key.encode("utf-8"))


def join_relpath(rel_dir: str, name: str) -> str:
    """Join a relative directory and a child name; "" is the root."""
    if not rel_dir:
        return name
    return f"{rel_dir}{SEP}{name}"


def split_relpath(rel_path: str):
    """Return (parent, name) for a relative path; the root has no parent."""
    parent, _, name = rel_path.rpartition(SEP)
    return parent, name


def is_under(path: Path, root: Path) -> bool:
    """Return True if path is under root (or is root)."""
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False
