from __future__ import annotations

import os
import stat

import psutil

from hidgadget.changeset.content import compare_file_content
from hidgadget.changeset.model import Action, FileChange, FileState
from hidgadget.changeset.symlinks import check_symlinks_in_order
from hidgadget.errors import ProbeError
from hidgadget.util.log import get_logger

log = get_logger("hidgadget.changeset.probe")


def check_if_dir_is_mount_point(fc: FileChange) -> None:
    try:
        mounts = psutil.disk_partitions(all=True)
    except OSError as e:
        raise ProbeError("failed to get mounts") from e

    for mount in mounts:
        if mount.mountpoint != fc.path:
            continue
        fc.actual_state = FileState.MOUNTED
        fc.actual_content = mount.device.encode()
        if mount.fstype == "configfs":
            fc.actual_state = FileState.MOUNTED_CONFIGFS
        return


def get_actual_state(fc: FileChange) -> None:
    """Probe fc.path and fill in fc.actual_state / fc.actual_content."""
    fc.reset_probe()

    try:
        st = os.lstat(fc.path)
    except FileNotFoundError:
        fc.actual_state = FileState.ABSENT
        return
    except OSError as e:
        log.warning("failed to stat %s: %s", fc.path, e)
        return

    mode = st.st_mode

    if stat.S_ISLNK(mode):
        fc.actual_state = FileState.SYMLINK
        try:
            target = os.readlink(fc.path)
        except OSError as e:
            log.warning("failed to read symlink %s: %s", fc.path, e)
            raise ProbeError(f"failed to read symlink {fc.path}") from e
        if not os.path.isabs(target):
            target = os.path.abspath(os.path.join(os.path.dirname(fc.path), target))
        fc.actual_content = target.encode()
        return

    if stat.S_ISDIR(mode):
        fc.actual_state = FileState.DIRECTORY
        if fc.expected_state is FileState.MOUNTED_CONFIGFS:
            check_if_dir_is_mount_point(fc)
        elif fc.expected_state is FileState.SYMLINK_IN_ORDER_CONFIGFS:
            fc.actual_state = check_symlinks_in_order(fc)
        return

    if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        log.info("%s is a device", fc.path)
        return

    if stat.S_ISREG(mode):
        fc.actual_state = FileState.FILE
        try:
            with open(fc.path, "rb") as f:
                fc.actual_content = f.read()
        except OSError as e:
            log.warning("failed to read %s: %s", fc.path, e)
            raise ProbeError(f"failed to read file {fc.path}") from e
        return

    log.warning("unknown file type for %s (mode=%o)", fc.path, mode)
    raise ProbeError(f"unknown file type: {fc.path}")


def resolve_action(fc: FileChange) -> Action:
    # nothing to compare against for these two
    if fc.expected_state is FileState.FILE_WRITE:
        return Action.WRITE_FILE
    if fc.expected_state is FileState.TOUCH:
        return Action.TOUCH

    try:
        get_actual_state(fc)
    except ProbeError as e:
        log.warning("unable to probe %s, leaving it alone: %s", fc.path, e)
        return Action.DO_NOTHING

    expected = fc.expected_state
    actual = fc.actual_state
    base_name = os.path.basename(fc.path)

    if expected is FileState.DIRECTORY:
        if actual is FileState.DIRECTORY:
            return Action.DO_NOTHING
        return Action.CREATE_DIRECTORY

    if expected is FileState.FILE:
        if actual is FileState.FILE:
            return Action.DO_NOTHING
        return Action.CREATE_FILE

    if expected is FileState.FILE_CONTENT_MATCH:
        if actual is not FileState.FILE:
            return Action.CREATE_FILE
        looser_match = base_name == "inquiry_string"
        if compare_file_content(fc.actual_content, fc.expected_content, looser_match):
            return Action.DO_NOTHING
        # an unloaded LUN reads back empty, writing "\n" is how it gets unloaded
        if base_name == "file" and fc.actual_content == b"" and fc.expected_content == b"\n":
            return Action.DO_NOTHING
        return Action.UPDATE_FILE

    if expected is FileState.SYMLINK:
        if actual is FileState.SYMLINK:
            if fc.actual_content == fc.expected_content:
                return Action.DO_NOTHING
            return Action.RECREATE_SYMLINK
        return Action.CREATE_SYMLINK

    if expected is FileState.SYMLINK_IN_ORDER_CONFIGFS:
        if actual is FileState.SYMLINK_IN_ORDER_CONFIGFS:
            return Action.DO_NOTHING
        return Action.REORDER_SYMLINKS

    if expected is FileState.ABSENT:
        if actual is FileState.ABSENT:
            return Action.DO_NOTHING
        return Action.REMOVE

    if expected is FileState.MOUNTED_CONFIGFS:
        if actual is FileState.MOUNTED_CONFIGFS:
            return Action.DO_NOTHING
        return Action.MOUNT_CONFIGFS

    log.warning("unknown expected state %s for %s", expected, fc.path)
    return Action.DO_NOTHING
