"""
Tests for native name <-> store key conversion.
"""

import os
from pathlib import Path

import pytest

from treemirror.errors import PathEncodingError
from treemirror.pathing import from_store_key, is_under, join_relpath, split_relpath, to_store_key


def test_utf8_names_round_trip():
    for name in ["plain.txt", "Dźmitry Laŭčuk.txt", "日本語", "a b/c"]:
        assert from_store_key(to_store_key(name)) == name


@pytest.mark.skipif(os.name == "nt", reason="POSIX byte-oriented file names only")
def test_undecodable_name_raises():
    native = os.fsdecode(b"bad\xff")

    with pytest.raises(PathEncodingError) as exc_info:
        to_store_key(native)

    assert exc_info.value.name == native


def test_join_and_split_relpath():
    assert join_relpath("", "a") == "a"
    assert join_relpath("a", "b") == "a/b"
    assert split_relpath("a/b/c") == ("a/b", "c")
    assert split_relpath("top") == ("", "top")


def test_is_under(tmp_path):
    assert is_under(tmp_path / "x" / "db.sqlite3", tmp_path)
    assert is_under(tmp_path, tmp_path)
    assert not is_under(Path("/elsewhere/db"), tmp_path)
