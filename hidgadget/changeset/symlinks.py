"""
Ordered symlink sets.

The kernel numbers the interfaces of a configfs USB configuration in the order
their function symlinks were created, and readdir on configfs reports entries
in that same order. A configuration directory is only "in order" when the
symlinks it holds, as enumerated, match the declared sequence exactly. Any
difference is fixed by removing every symlink and recreating all of them in
the declared order; swapping individual links would not change the numbering.
"""
from __future__ import annotations

import os
import stat
from typing import List

from hidgadget.changeset.model import FileChange, FileState, Symlink
from hidgadget.errors import ProbeError
from hidgadget.util.log import get_logger

log = get_logger("hidgadget.changeset.symlinks")


def _dir_entries(path: str) -> List[os.DirEntry]:
    # enumeration order is significant, never sort
    with os.scandir(path) as it:
        return list(it)


def _absolute_target(directory: str, target: str) -> str:
    if os.path.isabs(target):
        return target
    return os.path.abspath(os.path.join(directory, target))


def read_symlinks(directory: str) -> List[Symlink]:
    links: List[Symlink] = []
    for entry in _dir_entries(directory):
        if not entry.is_symlink():
            continue
        path = os.path.join(directory, entry.name)
        links.append(Symlink(path=path, target=_absolute_target(directory, os.readlink(path))))
    return links


def check_symlinks_in_order(fc: FileChange) -> FileState:
    if not fc.param_symlinks:
        raise ProbeError(f"no symlinks to check for {fc.path}")

    try:
        st = os.lstat(fc.path)
    except FileNotFoundError:
        return FileState.ABSENT
    except OSError as e:
        log.warning("failed to stat %s: %s", fc.path, e)
        raise ProbeError(f"failed to stat {fc.path}") from e

    if not stat.S_ISDIR(st.st_mode):
        raise ProbeError(f"{fc.path} is not a directory")

    try:
        actual = read_symlinks(fc.path)
    except OSError as e:
        raise ProbeError(f"failed to read directory {fc.path}") from e

    if list(fc.param_symlinks) == actual:
        return FileState.SYMLINK_IN_ORDER_CONFIGFS

    log.debug("symlinks in %s are not in order: expected=%s actual=%s", fc.path, fc.param_symlinks, actual)
    return FileState.SYMLINK_NOT_IN_ORDER_CONFIGFS


def recreate_symlinks(fc: FileChange) -> None:
    log.info("recreate symlinks in %s", fc.path)

    for entry in _dir_entries(fc.path):
        if not entry.is_symlink():
            continue
        log.info("remove symlink %s", entry.name)
        os.remove(os.path.join(fc.path, entry.name))

    for link in fc.param_symlinks:
        path = link.path
        if not os.path.isabs(path):
            path = os.path.join(fc.path, path)
        log.info("create symlink %s -> %s", path, link.target)
        os.symlink(link.target, path)
