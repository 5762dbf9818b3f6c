"""Pytest configuration and shared fixtures.

The gadget tests run against a plain temporary directory standing in for
configfs. Two kernel behaviours are faked:

- the mount table, so the temporary directory reports as a configfs mount
- directory enumeration order, which on configfs follows creation order
"""

import os
from collections import namedtuple
from pathlib import Path
from typing import Dict, List

import psutil
import pytest

from hidgadget.changeset import symlinks
from hidgadget.gadget.config import Config, Devices
from hidgadget.gadget.usbgadget import UsbGadget

UDC_NAME = "fc000000.usb"

FakePartition = namedtuple("FakePartition", ["device", "mountpoint", "fstype", "opts"])


@pytest.fixture
def configfs_root(tmp_path: Path, monkeypatch) -> Path:
    """A temporary configfs root that the mount table reports as mounted."""
    root = tmp_path / "config"
    (root / "usb_gadget").mkdir(parents=True)

    def _disk_partitions(all: bool = False):
        return [FakePartition("none", str(root), "configfs", "rw")]

    monkeypatch.setattr(psutil, "disk_partitions", _disk_partitions)
    return root


@pytest.fixture
def creation_order(monkeypatch) -> List[str]:
    """Make directory listings report symlinks in the order they were created."""
    created: List[str] = []
    real_symlink = os.symlink
    real_remove = os.remove
    real_entries = symlinks._dir_entries

    def _symlink(src, dst, *args, **kwargs):
        real_symlink(src, dst, *args, **kwargs)
        created.append(os.path.normpath(str(dst)))

    def _remove(path, *args, **kwargs):
        real_remove(path, *args, **kwargs)
        p = os.path.normpath(str(path))
        if p in created:
            created.remove(p)

    def _dir_entries(path: str):
        rank: Dict[str, int] = {p: i for i, p in enumerate(created)}
        entries = real_entries(path)
        return sorted(entries, key=lambda e: rank.get(os.path.normpath(e.path), -1))

    monkeypatch.setattr(os, "symlink", _symlink)
    monkeypatch.setattr(os, "remove", _remove)
    monkeypatch.setattr(symlinks, "_dir_entries", _dir_entries)
    return created


@pytest.fixture
def dwc3_dir(tmp_path: Path) -> Path:
    d = tmp_path / "dwc3"
    d.mkdir()
    (d / "bind").write_text("")
    (d / "unbind").write_text("")
    return d


@pytest.fixture
def udc_platform_dir(tmp_path: Path) -> Path:
    d = tmp_path / "usbdrd"
    (d / UDC_NAME).mkdir(parents=True)
    return d


@pytest.fixture
def udc_class_dir(tmp_path: Path) -> Path:
    d = tmp_path / "udc"
    (d / UDC_NAME).mkdir(parents=True)
    (d / UDC_NAME / "state").write_text("configured\n")
    return d


@pytest.fixture
def make_gadget(configfs_root, creation_order, dwc3_dir, udc_platform_dir, udc_class_dir):
    """Factory for a UsbGadget wired to the temporary tree."""

    def _make(devices: Devices = None, config: Config = None, **kwargs) -> UsbGadget:
        kwargs.setdefault("udc", UDC_NAME)
        kwargs.setdefault("udc_platform_dir", udc_platform_dir)
        kwargs.setdefault("udc_class", udc_class_dir)
        return UsbGadget(
            name="hidgadget",
            devices=devices,
            config=config,
            configfs_path=configfs_root,
            dwc3_path=dwc3_dir,
            **kwargs,
        )

    return _make
