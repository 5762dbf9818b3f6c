from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from hidgadget.changeset.model import Action, FileChange
from hidgadget.errors import ChangeSetError, GadgetError
from hidgadget.gadget.config import Config, Devices
from hidgadget.gadget.items import DEFAULT_GADGET_CONFIG, GadgetConfigItem, join_path, ordered_items
from hidgadget.gadget.transaction import GadgetTransaction
from hidgadget.hid import udc as udc_io
from hidgadget.util.log import get_logger
from hidgadget.util.paths import CONFIGFS_PATH, DWC3_PATH, GADGET_NAME, UDC_CLASS, UDC_PLATFORM_DIR

log = get_logger("hidgadget.gadget")

# item key -> Devices field that enables it; items not listed are always on
DEVICE_ITEMS = {
    "keyboard": "keyboard",
    "absolute_mouse": "absolute_mouse",
    "relative_mouse": "relative_mouse",
    "mass_storage_base": "mass_storage",
    "mass_storage_lun0": "mass_storage",
}


class UsbGadget:
    """
    A configfs USB gadget kept in sync with a declarative item table.

    All mutating entry points hold config_lock. The filesystem is only touched
    through transactions (see GadgetTransaction), which resolve the desired
    tree against what is on disk and apply the difference.
    """

    def __init__(
        self,
        name: str = GADGET_NAME,
        devices: Optional[Devices] = None,
        config: Optional[Config] = None,
        config_map: Mapping[str, GadgetConfigItem] = DEFAULT_GADGET_CONFIG,
        udc: Optional[str] = None,
        configfs_path: Path = CONFIGFS_PATH,
        dwc3_path: Path = DWC3_PATH,
        udc_platform_dir: Path = UDC_PLATFORM_DIR,
        udc_class: Path = UDC_CLASS,
        strict_mode: Optional[bool] = None,
    ):
        self.name = name
        self.configfs_path = os.path.normpath(str(configfs_path))
        self.gadget_path = os.path.join(self.configfs_path, "usb_gadget", name)
        self.config_c1_path = os.path.join(self.gadget_path, "configs", "c.1")
        self.dwc3_path = str(dwc3_path)
        self.udc_platform_dir = Path(udc_platform_dir)
        self.udc_class = Path(udc_class)

        self.udc = udc or ""
        self._fixed_udc = udc is not None

        self.config_map = config_map
        self.custom_config = config
        self.enabled_devices = devices.model_copy() if devices else Devices()
        # an explicit strict_mode wins over the one carried by config
        self._strict_override = strict_mode
        if strict_mode is None:
            strict_mode = bool(config and config.strict_mode)
        self.strict_mode = strict_mode

        # (item key, attribute) -> value, layered over the table and custom config
        self._overrides: Dict[Tuple[str, str], str] = {}

        self.config_lock = threading.Lock()
        self._tx_lock = threading.Lock()
        self._tx: Optional[GadgetTransaction] = None

    def log_warn(self, msg: str, err: Optional[BaseException] = None) -> None:
        if self.strict_mode:
            raise GadgetError(msg) from err
        if err is not None:
            log.warning("%s: %s", msg, err)
        else:
            log.warning("%s", msg)

    def log_error(self, msg: str, err: Optional[BaseException] = None) -> None:
        if self.strict_mode:
            raise GadgetError(msg) from err
        if err is not None:
            log.error("%s: %s", msg, err)
        else:
            log.error("%s", msg)

    def _custom_attrs(self) -> Dict[str, Dict[str, str]]:
        cfg = self.custom_config
        if cfg is None:
            return {}
        return {
            "base": {"idVendor": cfg.vendor_id, "idProduct": cfg.product_id},
            "base_info": {
                "serialnumber": cfg.serial_number,
                "manufacturer": cfg.manufacturer,
                "product": cfg.product,
            },
        }

    def gadget_config(self) -> Mapping[str, GadgetConfigItem]:
        """The item table with custom config and overrides applied."""
        layered = {key: dict(values) for key, values in self._custom_attrs().items()}
        config_layered: Dict[str, Dict[str, str]] = {}
        for (key, attr), value in self._overrides.items():
            item = self.config_map.get(key)
            if item is not None and attr in item.config_attrs:
                config_layered.setdefault(key, {})[attr] = value
            else:
                layered.setdefault(key, {})[attr] = value

        items = dict(self.config_map)
        for key, values in layered.items():
            if key in items:
                items[key] = items[key].with_attrs(**values)
        for key, values in config_layered.items():
            if key in items:
                items[key] = items[key].with_config_attrs(**values)
        return MappingProxyType(items)

    def is_gadget_config_item_enabled(self, key: str) -> bool:
        field_name = DEVICE_ITEMS.get(key)
        if field_name is None:
            return True
        return getattr(self.enabled_devices, field_name)

    def get_ordered_config_items(self) -> List[Tuple[str, GadgetConfigItem]]:
        return ordered_items(self.gadget_config())

    def _item(self, key: str) -> GadgetConfigItem:
        item = self.gadget_config().get(key)
        if item is None:
            raise GadgetError(f"config item {key} not found")
        return item

    def get_path(self, key: str) -> str:
        return join_path(self.gadget_path, self._item(key).path)

    def get_config_path(self, key: str) -> str:
        return join_path(self.config_c1_path, self._item(key).config_path)

    def _new_transaction(self) -> GadgetTransaction:
        if self._tx is not None:
            raise GadgetError("transaction already exists")
        self._tx = GadgetTransaction(
            udc=self.udc,
            configfs_path=self.configfs_path,
            dwc3_path=self.dwc3_path,
            gadget_path=self.gadget_path,
            config_c1_path=self.config_c1_path,
            ordered_items=self.get_ordered_config_items(),
            is_enabled=self.is_gadget_config_item_enabled,
        )
        return self._tx

    @contextmanager
    def transaction(self) -> Iterator[GadgetTransaction]:
        """Collect changes in the block, commit them when it exits cleanly."""
        with self._tx_lock:
            tx = self._new_transaction()
            try:
                yield tx
                tx.commit()
            except Exception as e:
                log.error("transaction failed: %s", e)
                raise
            finally:
                self._tx = None

    def _reconcile(self) -> None:
        with self.transaction() as tx:
            tx.mount_configfs()
            tx.create_config_path()
            tx.write_gadget_config()

    def plan(self) -> List[Tuple[FileChange, Action]]:
        """Resolve the full gadget change set without applying it."""
        with self.config_lock, self._tx_lock:
            tx = self._new_transaction()
            try:
                tx.mount_configfs()
                tx.create_config_path()
                tx.write_gadget_config()
                return tx.plan()
            finally:
                self._tx = None

    def init(self) -> None:
        with self.config_lock:
            if not self._fixed_udc:
                udcs = udc_io.get_udcs(self.udc_platform_dir)
                if not udcs:
                    self.log_warn("no udc found, skipping USB stack init")
                    return
                self.udc = udcs[0]

            if os.path.exists(self.gadget_path):
                log.info("usb gadget %s already exists", self.name)

            try:
                self._reconcile()
            except (ChangeSetError, GadgetError, OSError) as e:
                self.log_error("unable to initialize USB stack", e)

    def update_gadget_config(self) -> None:
        with self.config_lock:
            if not self.udc:
                self.log_warn("no udc selected, skipping gadget update")
                return
            try:
                self._reconcile()
            except (ChangeSetError, GadgetError, OSError) as e:
                self.log_error("failed to update gadget", e)

    def set_gadget_config(self, config: Optional[Config]) -> None:
        with self.config_lock:
            if config is None:
                return
            self.custom_config = config
            if self._strict_override is None:
                self.strict_mode = config.strict_mode

    def set_gadget_devices(self, devices: Optional[Devices]) -> None:
        with self.config_lock:
            if devices is None:
                return
            self.enabled_devices = devices.model_copy()

    def override_gadget_config(self, key: str, attr: str, value: str) -> bool:
        """Pin one attribute of one item. Returns True if the value changed."""
        with self.config_lock:
            item = self._item(key)
            if attr in item.config_attrs:
                current = item.config_attrs[attr]
            elif attr in item.attrs:
                current = item.attrs[attr]
            else:
                raise GadgetError(f"attribute {attr} not found in config item {key}")
            if current == value:
                return False
            self._overrides[(key, attr)] = value
            log.info("overriding gadget config %s.%s = %r", key, attr, value)
            return True

    def rebind_usb(self, ignore_unbind_error: bool) -> None:
        with self.config_lock:
            log.info("rebinding USB gadget to UDC %s", self.udc)
            with self.transaction() as tx:
                tx.rebind_usb(ignore_unbind_error)

    def get_usb_state(self) -> str:
        try:
            return udc_io.udc_state(self.udc, self.udc_class)
        except FileNotFoundError:
            return "not attached"
        except OSError as e:
            log.debug("failed to read usb state: %s", e)
            return "unknown"

    def is_udc_bound(self) -> bool:
        return udc_io.is_udc_bound(self.udc, Path(self.dwc3_path))

    def bind_udc(self) -> None:
        udc_io.bind_udc(self.udc, Path(self.dwc3_path))

    def unbind_udc(self) -> None:
        udc_io.unbind_udc(self.udc, Path(self.dwc3_path))
