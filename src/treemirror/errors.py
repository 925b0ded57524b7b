"""Fatal error taxonomy for snapshot creation and verification.

Mismatches between the snapshot and the live tree are never raised; they are
emitted as events (see ``treemirror.events``). Everything here aborts the
current operation.
"""

import errno as _errno


class MirrorError(Exception):
    """Base class for every fatal treemirror error."""


class _OSFailure(MirrorError):
    """An OS-level failure tied to a path; keeps the errno for callers."""

    action = "access"

    def __init__(self, path, errno=None, strerror=None):
        self.path = str(path)
        self.errno = errno
        self.strerror = strerror or (_errno.errorcode.get(errno, "unknown error") if errno else "unknown error")
        super().__init__(f"Unable to {self.action} '{self.path}': {self.strerror} (errno {self.errno})")

    @classmethod
    def from_oserror(cls, path, exc: OSError):
        return cls(path, exc.errno, exc.strerror)


class OpenFailure(_OSFailure):
    action = "open the file"


class ReadFailure(_OSFailure):
    action = "read the file"


class DirectoryOpenFailure(_OSFailure):
    action = "open the directory"


class WriteFailure(_OSFailure):
    action = "write the file"


class StoreError(MirrorError):
    """The snapshot store could not be read or written."""


class StoreOpenFailure(StoreError):
    pass


class PathEncodingError(MirrorError):
    """A filesystem name has no representation in the store's UTF-8 encoding."""

    def __init__(self, name):
        self.name = name
        super().__init__(f"Cannot convert {name!r} to UTF-8")
