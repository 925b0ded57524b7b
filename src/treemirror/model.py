from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"

    def __str__(self):
        return "file" if self is FileKind.FILE else "directory"


@dataclass(frozen=True)
class FileRecord:
    """Expected or observed state of one directory child.

    ``size``, ``mtime_ms`` and ``digest`` are only meaningful for files;
    directory records leave them as None.
    """
    kind: FileKind
    size: Optional[int] = None
    mtime_ms: Optional[int] = None
    digest: Optional[str] = None

    @classmethod
    def directory(cls) -> "FileRecord":
        return cls(kind=FileKind.DIRECTORY)

    @property
    def is_dir(self) -> bool:
        return self.kind is FileKind.DIRECTORY


# Children of exactly one directory, keyed by name, not yet reconciled.
DirectoryExpectation = Dict[str, FileRecord]

# Relative paths of every directory known to a snapshot ("" is the root).
DirectorySet = Set[str]
