"""
Builds the change set for one gadget configuration.

Nothing in here touches the filesystem: every method only declares changes.
The filesystem is probed and modified when the transaction is committed.
"""
from __future__ import annotations

import os
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from hidgadget.changeset.changeset import ChangeSet
from hidgadget.changeset.model import WHEN_BEFORE_CHANGE, FileState, RequestedFileChange, Symlink
from hidgadget.gadget.items import GadgetConfigItem, join_path
from hidgadget.util.log import get_logger

log = get_logger("hidgadget.gadget.transaction")

REORDER_SYMLINKS_KEY = "reorder-symlinks"
UDC_KEY = "udc"


def disable_key(device: str) -> str:
    return f"disable-{device}"


class GadgetTransaction:
    def __init__(
        self,
        udc: str,
        configfs_path: str,
        dwc3_path: str,
        gadget_path: str,
        config_c1_path: str,
        ordered_items: Sequence[Tuple[str, GadgetConfigItem]],
        is_enabled: Callable[[str], bool],
    ):
        self.c = ChangeSet()
        self.udc = udc
        self.configfs_path = configfs_path
        self.dwc3_path = dwc3_path
        self.gadget_path = gadget_path
        self.config_c1_path = config_c1_path
        self.ordered_items = list(ordered_items)
        self.is_enabled = is_enabled

        self.reorder_symlink_change: Optional[RequestedFileChange] = None
        self._finalized = False

    def add_file_change(self, component: str, change: RequestedFileChange) -> str:
        change.component = component
        return self.c.add_file_change_struct(change)

    def mkdir_all(self, component: str, path: str, description: str, deps: Sequence[str]) -> str:
        return self.add_file_change(component, RequestedFileChange(
            path=path,
            expected_state=FileState.DIRECTORY,
            description=description,
            depends_on=list(deps),
        ))

    def mount_configfs(self) -> None:
        self.add_file_change("gadget", RequestedFileChange(
            path=self.configfs_path,
            expected_state=FileState.MOUNTED_CONFIGFS,
            description="mount configfs",
        ))

    def create_config_path(self) -> None:
        self.mkdir_all("gadget", self.config_c1_path, "create config path", [self.configfs_path])

    def write_gadget_config(self) -> None:
        self.mkdir_all("gadget", self.gadget_path, "create gadget path", [self.config_c1_path])

        deps: List[str] = [self.gadget_path]
        for key, item in self.ordered_items:
            if not self.is_enabled(key):
                log.debug("disabling gadget config: %s", key)
                self.disable_gadget_item_config(item)
                continue
            log.debug("writing gadget config: %s", key)
            deps = self.write_gadget_item_config(item, deps)

        self.write_udc()

    def get_disable_keys(self) -> List[str]:
        return [disable_key(item.device) for _, item in self.ordered_items if item.is_linked]

    def disable_gadget_item_config(self, item: GadgetConfigItem) -> None:
        if not item.is_linked:
            return

        # only applied when a real change elsewhere asks for it
        self.add_file_change("gadget", RequestedFileChange(
            key=disable_key(item.device),
            path=join_path(self.config_c1_path, item.config_path),
            expected_state=FileState.ABSENT,
            when=WHEN_BEFORE_CHANGE,
            description="remove symlink: disable gadget config",
        ))

    def write_gadget_item_config(self, item: GadgetConfigItem, deps: Sequence[str]) -> List[str]:
        component = item.device or "gadget"
        files: List[str] = list(deps)

        item_path = join_path(self.gadget_path, item.path)
        if item_path != self.gadget_path:
            files.append(self.mkdir_all(component, item_path, "create gadget item directory", files))

        # a linked function cannot be modified while it is part of the configuration
        before_change: List[str] = self.get_disable_keys() if item.is_linked else []

        files.extend(self.write_gadget_attrs(item_path, item.attrs, component, before_change))

        report_desc_path = os.path.join(item_path, "report_desc")
        if item.report_desc is not None:
            self.add_file_change(component, RequestedFileChange(
                path=report_desc_path,
                expected_state=FileState.FILE_CONTENT_MATCH,
                expected_content=item.report_desc,
                description="write report descriptor",
                before_change=list(before_change),
                depends_on=list(files),
            ))
        else:
            self.add_file_change(component, RequestedFileChange(
                path=report_desc_path,
                expected_state=FileState.ABSENT,
                description="remove report descriptor",
                before_change=list(before_change),
                depends_on=list(files),
            ))
        files.append(report_desc_path)

        if item.config_attrs:
            config_item_path = join_path(self.config_c1_path, item.config_path)
            if config_item_path != self.config_c1_path:
                files.append(self.mkdir_all(component, config_item_path, "create config item directory", files))
            files.extend(self.write_gadget_attrs(config_item_path, item.config_attrs, component, before_change))

        if item.is_linked:
            config_path = join_path(self.config_c1_path, item.config_path)
            self.add_file_change(component, RequestedFileChange(
                key=disable_key(item.device),
                path=config_path,
                expected_state=FileState.ABSENT,
                when=WHEN_BEFORE_CHANGE,
                description="remove symlink",
            ))
            self.add_reorder_symlink_change(config_path, item_path, files)

        return files

    def write_gadget_attrs(self, base_path: str, attrs: Mapping[str, str], component: str, before_change: Sequence[str]) -> List[str]:
        files: List[str] = []
        for name, value in attrs.items():
            path = os.path.join(base_path, name)
            self.add_file_change(component, RequestedFileChange(
                path=path,
                expected_state=FileState.FILE_CONTENT_MATCH,
                expected_content=value.encode(),
                description="write gadget attribute",
                depends_on=[base_path],
                before_change=list(before_change),
            ))
            files.append(path)
        return files

    def add_reorder_symlink_change(self, path: str, target: str, deps: Sequence[str]) -> None:
        log.debug("add reorder symlink change: %s -> %s", path, target)

        if self.reorder_symlink_change is None:
            self.reorder_symlink_change = RequestedFileChange(
                component="gadget-finalize",
                key=REORDER_SYMLINKS_KEY,
                path=self.config_c1_path,
                expected_state=FileState.SYMLINK_IN_ORDER_CONFIGFS,
                description="order symlinks",
            )

        change = self.reorder_symlink_change
        change.depends_on.extend(d for d in deps if d not in change.depends_on)
        change.param_symlinks.append(Symlink(path=path, target=target))

    def write_udc(self) -> None:
        self.add_file_change("udc", RequestedFileChange(
            key=UDC_KEY,
            path=os.path.join(self.gadget_path, "UDC"),
            expected_state=FileState.FILE_CONTENT_MATCH,
            expected_content=self.udc.encode(),
            depends_on=[REORDER_SYMLINKS_KEY],
            description="write UDC",
        ))

    def rebind_usb(self, ignore_unbind_error: bool) -> None:
        unbind_path = os.path.join(self.dwc3_path, "unbind")
        self.add_file_change("udc", RequestedFileChange(
            path=unbind_path,
            expected_state=FileState.FILE_WRITE,
            expected_content=self.udc.encode(),
            description="unbind UDC",
            depends_on=[UDC_KEY],
            ignore_errors=ignore_unbind_error,
        ))
        self.add_file_change("udc", RequestedFileChange(
            path=os.path.join(self.dwc3_path, "bind"),
            expected_state=FileState.FILE_WRITE,
            expected_content=self.udc.encode(),
            description="bind UDC",
            depends_on=[unbind_path],
        ))

    def finalize(self) -> None:
        if self._finalized:
            return
        if self.reorder_symlink_change is not None:
            self.add_file_change("gadget-finalize", self.reorder_symlink_change)
        else:
            self.unlink_disabled_items()
        self._finalized = True

    def unlink_disabled_items(self) -> None:
        """
        With no linked function left there is no reorder step to drop stale
        symlinks, so the disable changes become unconditional and the UDC
        write waits for them instead.
        """
        keys = set(self.get_disable_keys())
        removals = [c for c in self.c.changes if c.when and c.effective_key in keys]
        if not removals:
            return

        for change in removals:
            change.when = ""
        removal_keys = [c.effective_key for c in removals]
        log.debug("no linked functions, unlinking %s", ", ".join(removal_keys))

        for change in self.c.changes:
            if change.effective_key == UDC_KEY:
                change.depends_on = [d for d in change.depends_on if d != REORDER_SYMLINKS_KEY] + removal_keys

    def plan(self):
        self.finalize()
        return self.c.plan()

    def commit(self) -> None:
        self.finalize()

        try:
            self.c.apply()
        except Exception as e:
            log.error("failed to update usb gadget configuration: %s", e)
            raise
        log.info("usb gadget configuration updated")
