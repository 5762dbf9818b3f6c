from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from hidgadget.util.log import get_logger
from hidgadget.util.paths import GADGET_NAME, SETTINGS_FILE

log = get_logger("hidgadget.gadget.config")


class Devices(BaseModel):
    """Which USB functions are linked into the gadget configuration."""

    absolute_mouse: bool = True
    relative_mouse: bool = True
    keyboard: bool = True
    mass_storage: bool = True


class Config(BaseModel):
    """Customizations layered over the default gadget table."""

    vendor_id: str = "0x1d6b"
    product_id: str = "0x0104"
    serial_number: str = ""
    manufacturer: str = "hidgadget"
    product: str = "hidgadget USB Emulation Device"

    # turn logged warnings into errors, mostly for tests
    strict_mode: bool = Field(default=False, exclude=True)


class GadgetSettings(BaseModel):
    name: str = GADGET_NAME
    udc: Optional[str] = None  # first discovered controller when unset
    usb_config: Optional[Config] = None
    usb_devices: Devices = Field(default_factory=Devices)


def load_settings(path: Path = SETTINGS_FILE) -> GadgetSettings:
    if not path.exists():
        log.debug("no settings at %s, using defaults", path)
        return GadgetSettings()
    return GadgetSettings.model_validate_json(path.read_text())


def save_settings(settings: GadgetSettings, path: Path = SETTINGS_FILE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(settings.model_dump_json(indent=2))
    log.info("settings saved to %s", path)
