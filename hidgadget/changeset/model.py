"""
Change model for the configfs reconciler.

A RequestedFileChange is one desired assertion about one path. The resolver
wraps it in a FileChange, which additionally carries what the probe found on
disk and the dependency edges discovered while resolving.

This is a small take on ansible's `file` module, bent towards configfs: the
order in which symlinks are created matters, some attributes come back
reformatted, and directories have to exist before the files inside them.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import List, Optional

WHEN_BEFORE_CHANGE = "beforeChange"


class FileState(Enum):
    UNKNOWN = "UNKNOWN"
    ABSENT = "ABSENT"
    DIRECTORY = "DIRECTORY"
    FILE = "FILE"
    FILE_CONTENT_MATCH = "FILE_CONTENT_MATCH"
    FILE_WRITE = "FILE_WRITE"  # write without looking at the current content
    MOUNTED = "MOUNTED"
    MOUNTED_CONFIGFS = "CONFIGFS_MOUNT"
    SYMLINK = "SYMLINK"
    # configfs derives interface numbers from the order symlinks were created in
    SYMLINK_IN_ORDER_CONFIGFS = "SYMLINK_IN_ORDER_CONFIGFS"
    SYMLINK_NOT_IN_ORDER_CONFIGFS = "SYMLINK_NOT_IN_ORDER_CONFIGFS"
    TOUCH = "TOUCH"

    def __str__(self) -> str:
        return self.value


class Action(Enum):
    UNKNOWN = "UNKNOWN"
    DO_NOTHING = "DO_NOTHING"
    REMOVE = "REMOVE"
    CREATE_FILE = "FILE_CREATE"
    WRITE_FILE = "FILE_WRITE"
    UPDATE_FILE = "FILE_UPDATE"
    APPEND_FILE = "FILE_APPEND"
    CREATE_SYMLINK = "SYMLINK_CREATE"
    RECREATE_SYMLINK = "SYMLINK_RECREATE"
    CREATE_DIRECTORY_AND_SYMLINKS = "DIR_CREATE_AND_SYMLINKS"
    REORDER_SYMLINKS = "SYMLINK_REORDER"
    CREATE_DIRECTORY = "DIR_CREATE"
    REMOVE_DIRECTORY = "DIR_REMOVE"
    TOUCH = "TOUCH"
    MOUNT_CONFIGFS = "CONFIGFS_MOUNT"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Symlink:
    path: str
    target: str


@dataclass
class RequestedFileChange:
    component: str = ""
    key: str = ""  # falls back to path
    path: str = ""
    expected_state: FileState = FileState.UNKNOWN
    expected_content: bytes = b""
    param_symlinks: List[Symlink] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    # keys that must be applied first, but only if this change turns out to be real
    before_change: List[str] = field(default_factory=list)
    when: str = ""
    ignore_errors: bool = False
    description: str = ""

    @property
    def effective_key(self) -> str:
        return self.key or self.path

    def is_same(self, other: RequestedFileChange) -> bool:
        return (
            self.path == other.path
            and self.expected_state == other.expected_state
            and self.expected_content == other.expected_content
            and list(self.depends_on) == list(other.depends_on)
            and self.ignore_errors == other.ignore_errors
        )

    def __str__(self) -> str:
        content = self.expected_content.decode(errors="replace")
        s = self.expected_state
        if s is FileState.DIRECTORY:
            return f"dir: {self.path}"
        if s is FileState.FILE:
            return f"file: {self.path}"
        if s is FileState.SYMLINK:
            return f"symlink: {self.path} -> {content}"
        if s is FileState.SYMLINK_IN_ORDER_CONFIGFS:
            links = ", ".join(f"{l.path} -> {l.target}" for l in self.param_symlinks)
            return f"symlink_in_order_configfs: {self.path} [{links}]"
        if s is FileState.ABSENT:
            return f"absent: {self.path}"
        if s is FileState.FILE_CONTENT_MATCH:
            return f"file: {self.path} with content [{content}]"
        if s is FileState.FILE_WRITE:
            return f"write: {self.path} with content [{content}]"
        if s is FileState.MOUNTED_CONFIGFS:
            return f"configfs: {self.path}"
        if s is FileState.TOUCH:
            return f"touch: {self.path}"
        if s is FileState.UNKNOWN:
            return f"unknown change for {self.path}"
        return f"unknown expected state {s} for {self.path}"


@dataclass
class FileChange(RequestedFileChange):
    actual_state: FileState = FileState.UNKNOWN
    actual_content: bytes = b""
    resolved_deps: List[str] = field(default_factory=list)

    @classmethod
    def from_request(cls, request: RequestedFileChange) -> FileChange:
        values = {f.name: getattr(request, f.name) for f in fields(RequestedFileChange)}
        for name in ("param_symlinks", "depends_on", "before_change"):
            values[name] = list(values[name])
        return cls(**values)

    def reset_probe(self) -> None:
        self.actual_state = FileState.UNKNOWN
        self.actual_content = b""


def file_change(
    component: str,
    path: str,
    expected_state: FileState,
    expected_content: bytes = b"",
    depends_on: Optional[List[str]] = None,
    description: str = "",
) -> RequestedFileChange:
    return RequestedFileChange(
        component=component,
        path=path,
        expected_state=expected_state,
        expected_content=expected_content,
        depends_on=list(depends_on or []),
        description=description,
    )
