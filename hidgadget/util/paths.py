from pathlib import Path

CONFIGFS_PATH = Path("/sys/kernel/config")
GADGET_NAME = "hidgadget"

UDC_CLASS = Path("/sys/class/udc")
UDC_PLATFORM_DIR = Path("/sys/devices/platform/usbdrd")
UDC_SUFFIX = ".usb"
DWC3_PATH = Path("/sys/bus/platform/drivers/dwc3")

CONFIG_DIR = Path.home() / ".config" / "hidgadget"
SETTINGS_FILE = CONFIG_DIR / "gadget.json"
