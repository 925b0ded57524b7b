"""Depth-first directory walk that drives a TreeObserver."""

import logging
import os
from pathlib import Path

from treemirror.errors import DirectoryOpenFailure
from treemirror.pathing import join_relpath

logger = logging.getLogger("treemirror.walker")


class TreeObserver:
    """Callbacks invoked by walk().

    Relative directory paths use "/" separators; the root is "".
    """

    def enter_directory(self, rel_dir: str) -> None:
        raise NotImplementedError

    def visit_file(self, abs_dir: str, rel_dir: str, name: str) -> None:
        raise NotImplementedError

    def leave_directory(self, rel_dir: str) -> None:
        raise NotImplementedError


def walk(root_path, observer: TreeObserver) -> None:
    """
    Walk ROOT_PATH depth-first, directories before their contents.

    Regular files go to observer.visit_file, subdirectories are recursed
    into, and anything else (symlinks, devices, sockets, FIFOs) is skipped.
    Symlinks are never followed.
    """
    _scan_dir(os.fspath(Path(root_path)), "", observer)


def _scan_dir(abs_dir: str, rel_dir: str, observer: TreeObserver) -> None:
    logger.debug("Scanning '%s'...", abs_dir)
    try:
        entries = os.scandir(abs_dir)
    except PermissionError:
        logger.warning("⚠️ No access to '%s', skipping it", abs_dir)
        return
    except OSError as e:
        raise DirectoryOpenFailure.from_oserror(abs_dir, e) from e

    with entries:
        observer.enter_directory(rel_dir)
        while True:
            try:
                entry = next(entries)
            except StopIteration:
                break
            except OSError as e:
                raise DirectoryOpenFailure.from_oserror(abs_dir, e) from e

            if entry.name in (".", ".."):
                continue
            try:
                # may stat on filesystems that do not report d_type
                is_file = entry.is_file(follow_symlinks=False)
                is_dir = not is_file and entry.is_dir(follow_symlinks=False)
            except PermissionError:
                logger.warning("⚠️ No access to '%s', skipping it", entry.path)
                continue

            if is_file:
                observer.visit_file(abs_dir, rel_dir, entry.name)
            elif is_dir:
                _scan_dir(entry.path, join_relpath(rel_dir, entry.name), observer)
            else:
                logger.debug("'%s' is neither a directory nor a regular file, skipping it", entry.path)

    observer.leave_directory(rel_dir)
