from __future__ import annotations

import time
from pathlib import Path
from typing import List

from hidgadget.errors import GadgetError
from hidgadget.util.log import get_logger
from hidgadget.util.paths import DWC3_PATH, UDC_CLASS, UDC_PLATFORM_DIR, UDC_SUFFIX

log = get_logger("hidgadget.hid.udc")


def get_udcs(platform_dir: Path = UDC_PLATFORM_DIR, suffix: str = UDC_SUFFIX) -> List[str]:
    # controllers show up as <address>.usb directories under the platform device
    try:
        entries = list(platform_dir.iterdir())
    except OSError:
        return []
    return sorted(p.name for p in entries if p.is_dir() and p.name.endswith(suffix))


def udc_state(name: str, udc_class: Path = UDC_CLASS) -> str:
    return (udc_class / name / "state").read_text().strip()


def wait_udc_configured(name: str, timeout: float = 20.0, udc_class: Path = UDC_CLASS) -> bool:
    end = time.time() + timeout
    while time.time() < end:
        try:
            if udc_state(name, udc_class) == "configured":
                return True
        except OSError:
            pass
        time.sleep(0.05)
    return False


def is_udc_bound(name: str, driver_dir: Path = DWC3_PATH) -> bool:
    try:
        (driver_dir / name).stat()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise GadgetError(f"error checking USB emulation state: {e}") from e
    return True


def bind_udc(name: str, driver_dir: Path = DWC3_PATH) -> None:
    log.info("binding UDC %s", name)
    try:
        (driver_dir / "bind").write_text(name)
    except OSError as e:
        raise GadgetError(f"error binding UDC: {e}") from e


def unbind_udc(name: str, driver_dir: Path = DWC3_PATH) -> None:
    log.info("unbinding UDC %s", name)
    try:
        (driver_dir / "unbind").write_text(name)
    except OSError as e:
        raise GadgetError(f"error unbinding UDC: {e}") from e
