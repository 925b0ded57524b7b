"""Structured discrepancy events emitted during verification.

Listeners are plain callables taking one event. Events carry identifying data
only; formatting is left to the listener (see ``treemirror.report``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

from treemirror.model import FileKind
from treemirror.pathing import join_relpath


class MismatchField(str, Enum):
    # Declaration order is the emission order for a single file.
    KIND = "kind"
    SIZE = "size"
    MTIME = "mtime"
    DIGEST = "digest"


@dataclass(frozen=True)
class NewFileFound:
    """Present in the file system, absent from the snapshot."""
    dir_path: str
    name: str
    kind: FileKind = FileKind.FILE

    @property
    def path(self) -> str:
        return join_relpath(self.dir_path, self.name)

    def to_dict(self) -> dict:
        return {"event": "new", "path": self.path, "kind": self.kind.value}


@dataclass(frozen=True)
class FileNotFound:
    """Recorded in the snapshot, absent from the file system."""
    dir_path: str
    name: str
    kind: FileKind = FileKind.FILE

    @property
    def path(self) -> str:
        return join_relpath(self.dir_path, self.name)

    def to_dict(self) -> dict:
        return {"event": "missing", "path": self.path, "kind": self.kind.value}


@dataclass(frozen=True)
class DirectoryNotFound:
    path: str

    def to_dict(self) -> dict:
        return {"event": "missing", "path": self.path, "kind": FileKind.DIRECTORY.value}


@dataclass(frozen=True)
class FieldMismatch:
    dir_path: str
    name: str
    field: MismatchField
    expected: Any
    actual: Any

    @property
    def path(self) -> str:
        return join_relpath(self.dir_path, self.name)

    def to_dict(self) -> dict:
        expected, actual = self.expected, self.actual
        if self.field is MismatchField.KIND:
            expected, actual = expected.value, actual.value
        return {
            "event": "mismatch",
            "path": self.path,
            "field": self.field.value,
            "expected": expected,
            "actual": actual,
        }


MismatchEvent = Union[NewFileFound, FileNotFound, DirectoryNotFound, FieldMismatch]
MismatchListener = Callable[[MismatchEvent], None]
