from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

from hidgadget.changeset.model import Action, FileChange
from hidgadget.changeset.symlinks import recreate_symlinks
from hidgadget.errors import UnknownActionError
from hidgadget.util.log import get_logger

log = get_logger("hidgadget.changeset.apply")


def _write(path: str, data: bytes) -> None:
    Path(path).write_bytes(data)


def _remove(path: str) -> None:
    # empty directories only, see REMOVE_DIRECTORY for trees
    if os.path.isdir(path) and not os.path.islink(path):
        os.rmdir(path)
    else:
        os.remove(path)


def mount_configfs(path: str) -> None:
    if os.path.exists(os.path.join(path, "usb_gadget")):
        return

    log.info("mounting configfs at %s", path)
    try:
        subprocess.run(["mount", "-t", "configfs", "none", path], check=True, capture_output=True)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
        raise OSError(f"failed to mount configfs at {path}: {stderr or e}") from e


def apply_change(fc: FileChange, action: Action) -> None:
    if action in (Action.WRITE_FILE, Action.UPDATE_FILE, Action.CREATE_FILE):
        _write(fc.path, fc.expected_content)
    elif action is Action.CREATE_SYMLINK:
        os.symlink(fc.expected_content.decode(), fc.path)
    elif action is Action.RECREATE_SYMLINK:
        os.remove(fc.path)
        os.symlink(fc.expected_content.decode(), fc.path)
    elif action is Action.REORDER_SYMLINKS:
        recreate_symlinks(fc)
    elif action is Action.CREATE_DIRECTORY:
        os.makedirs(fc.path, 0o755, exist_ok=True)
    elif action is Action.REMOVE:
        _remove(fc.path)
    elif action is Action.REMOVE_DIRECTORY:
        shutil.rmtree(fc.path)
    elif action is Action.TOUCH:
        os.utime(fc.path)
    elif action is Action.MOUNT_CONFIGFS:
        mount_configfs(fc.path)
    elif action is Action.DO_NOTHING:
        return
    else:
        raise UnknownActionError(f"unknown action: {action}")
