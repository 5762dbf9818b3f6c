from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from hidgadget.hid.descriptors import (
    ABSOLUTE_MOUSE_REPORT_DESC,
    KEYBOARD_REPORT_DESC,
    RELATIVE_MOUSE_REPORT_DESC,
)

EMPTY_ATTRS: Mapping[str, str] = MappingProxyType({})


def attrs(**values: str) -> Mapping[str, str]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True)
class GadgetConfigItem:
    """
    One part of the gadget tree.

    path is relative to the gadget root, config_path to configs/c.1. An item
    with a config_path but no config_attrs is a function that gets linked into
    the configuration; one with config_attrs writes attributes there instead.
    """

    order: int
    device: str = ""
    path: Tuple[str, ...] = ()
    attrs: Mapping[str, str] = field(default_factory=lambda: EMPTY_ATTRS)
    config_path: Optional[Tuple[str, ...]] = None
    config_attrs: Mapping[str, str] = field(default_factory=lambda: EMPTY_ATTRS)
    report_desc: Optional[bytes] = None

    @property
    def is_linked(self) -> bool:
        return self.config_path is not None and not self.config_attrs

    def with_attrs(self, **values: str) -> GadgetConfigItem:
        return replace(self, attrs=MappingProxyType({**self.attrs, **values}))

    def with_config_attrs(self, **values: str) -> GadgetConfigItem:
        return replace(self, config_attrs=MappingProxyType({**self.config_attrs, **values}))


def join_path(base: str, parts: Optional[Sequence[str]]) -> str:
    return os.path.normpath(os.path.join(base, *(parts or ())))


def ordered_items(config: Mapping[str, GadgetConfigItem]) -> List[Tuple[str, GadgetConfigItem]]:
    # stable for equal orders, so the table's own order breaks ties
    return sorted(config.items(), key=lambda kv: kv[1].order)


DEFAULT_GADGET_CONFIG: Mapping[str, GadgetConfigItem] = MappingProxyType({
    "base": GadgetConfigItem(
        order=0,
        attrs=attrs(
            bcdUSB="0x0200",     # USB 2.0
            idVendor="0x1d6b",   # The Linux Foundation
            idProduct="0104",    # Multifunction Composite Gadget
            bcdDevice="0100",
        ),
        config_attrs=attrs(MaxPower="250"),  # 2mA units
    ),
    "base_info": GadgetConfigItem(
        order=1,
        path=("strings", "0x409"),
        config_path=("strings", "0x409"),
        attrs=attrs(
            serialnumber="",
            manufacturer="hidgadget",
            product="hidgadget USB Emulation Device",
        ),
        config_attrs=attrs(configuration="Config 1: HID"),
    ),
    "keyboard": GadgetConfigItem(
        order=1000,
        device="hid.usb0",
        path=("functions", "hid.usb0"),
        config_path=("hid.usb0",),
        attrs=attrs(protocol="1", subclass="1", report_length="8", no_out_endpoint="0"),
        report_desc=KEYBOARD_REPORT_DESC,
    ),
    "absolute_mouse": GadgetConfigItem(
        order=1001,
        device="hid.usb1",
        path=("functions", "hid.usb1"),
        config_path=("hid.usb1",),
        attrs=attrs(protocol="2", subclass="0", report_length="6"),
        report_desc=ABSOLUTE_MOUSE_REPORT_DESC,
    ),
    "relative_mouse": GadgetConfigItem(
        order=1002,
        device="hid.usb2",
        path=("functions", "hid.usb2"),
        config_path=("hid.usb2",),
        attrs=attrs(protocol="2", subclass="1", report_length="4", no_out_endpoint="1"),
        report_desc=RELATIVE_MOUSE_REPORT_DESC,
    ),
    "mass_storage_base": GadgetConfigItem(
        order=3000,
        device="mass_storage.usb0",
        path=("functions", "mass_storage.usb0"),
        config_path=("mass_storage.usb0",),
        attrs=attrs(stall="1"),
    ),
    "mass_storage_lun0": GadgetConfigItem(
        order=3001,
        path=("functions", "mass_storage.usb0", "lun.0"),
        attrs=attrs(
            cdrom="1",
            ro="1",
            removable="1",
            file="\n",
            inquiry_string="hidgadget Virtual Media",
        ),
    ),
})
