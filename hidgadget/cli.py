from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from hidgadget.changeset.model import Action
from hidgadget.errors import ChangeSetError, GadgetError
from hidgadget.gadget.config import Devices, load_settings
from hidgadget.gadget.usbgadget import UsbGadget
from hidgadget.hid.udc import get_udcs, wait_udc_configured
from hidgadget.util.log import get_logger, setup_logging
from hidgadget.util.paths import CONFIGFS_PATH, SETTINGS_FILE

log = get_logger("hidgadget.cli")


def _make_gadget(args, devices: Optional[Devices] = None) -> UsbGadget:
    settings = load_settings(Path(args.settings))
    return UsbGadget(
        name=args.name or settings.name,
        devices=devices or settings.usb_devices,
        config=settings.usb_config,
        strict_mode=getattr(args, "strict", False) or None,
        udc=settings.udc,
        configfs_path=Path(args.configfs),
    )


def _select_udc(gadget: UsbGadget) -> bool:
    if gadget.udc:
        return True
    udcs = get_udcs(gadget.udc_platform_dir)
    if not udcs:
        print("ERROR: no UDC found", file=sys.stderr)
        return False
    gadget.udc = udcs[0]
    return True


def cmd_status(args) -> int:
    g = _make_gadget(args)
    _select_udc(g)

    print("UDCs:", ", ".join(get_udcs(g.udc_platform_dir)) or "(none)")
    print("UDC:", g.udc or "(none)")
    print("UDC state:", g.get_usb_state())
    try:
        print("UDC bound:", g.is_udc_bound())
    except GadgetError as e:
        print("UDC bound: unknown", f"({e})")

    udc_file = Path(g.gadget_path) / "UDC"
    print("Gadget UDC file:", udc_file.read_text().strip() if udc_file.exists() else "(missing)")
    for dev in ("/dev/hidg0", "/dev/hidg1", "/dev/hidg2"):
        print(f"{dev} exists:", Path(dev).exists())
    return 0


def _devices_from_args(args) -> Devices:
    settings = load_settings(Path(args.settings))
    devices = settings.usb_devices.model_copy()
    for name in ("keyboard", "absolute_mouse", "relative_mouse", "mass_storage"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(devices, name, value)
    return devices


def cmd_apply(args) -> int:
    setup_logging(args.verbose)
    g = _make_gadget(args, _devices_from_args(args))
    try:
        g.init()
    except GadgetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_plan(args) -> int:
    setup_logging(args.verbose)
    g = _make_gadget(args, _devices_from_args(args))
    if not _select_udc(g):
        return 2

    try:
        planned = g.plan()
    except ChangeSetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    pending = 0
    for change, action in planned:
        if action is Action.DO_NOTHING and not args.all:
            continue
        if action is not Action.DO_NOTHING:
            pending += 1
        print(f"{str(action):<18} {change.component:<20} {change}")
    print(f"{pending} change(s) pending")
    return 0


def cmd_rebind(args) -> int:
    setup_logging(args.verbose)
    g = _make_gadget(args)
    if not _select_udc(g):
        return 2
    try:
        g.rebind_usb(ignore_unbind_error=not args.strict_unbind)
    except ChangeSetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if args.wait and not wait_udc_configured(g.udc, timeout=args.wait, udc_class=g.udc_class):
        log.warning("UDC %s not configured after %.1fs (host not enumerated?)", g.udc, args.wait)
    return 0


def cmd_bind(args) -> int:
    setup_logging(args.verbose)
    g = _make_gadget(args)
    if not _select_udc(g):
        return 2
    try:
        if args.cmd == "bind":
            g.bind_udc()
        else:
            g.unbind_udc()
    except GadgetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_serve(args) -> int:
    import uvicorn
    from hidgadget.server import app
    print(f"Starting server on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _add_device_flags(sp: argparse.ArgumentParser) -> None:
    for name in ("keyboard", "absolute-mouse", "relative-mouse", "mass-storage"):
        dest = name.replace("-", "_")
        sp.add_argument(f"--{name}", dest=dest, action="store_true", default=None)
        sp.add_argument(f"--no-{name}", dest=dest, action="store_false", default=None)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hidgadget")
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("--configfs", default=str(CONFIGFS_PATH))
    p.add_argument("--name", default=None, help="Gadget name (default: from settings)")
    p.add_argument("--settings", default=str(SETTINGS_FILE))

    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("status")
    sp.set_defaults(func=cmd_status)

    sp = sub.add_parser("apply", help="Mount configfs, reconcile the gadget tree and bind the UDC")
    sp.add_argument("--strict", action="store_true", help="Fail instead of logging problems")
    _add_device_flags(sp)
    sp.set_defaults(func=cmd_apply)

    sp = sub.add_parser("plan", help="Show what apply would change")
    sp.add_argument("--all", action="store_true", help="Also list changes that are already in place")
    _add_device_flags(sp)
    sp.set_defaults(func=cmd_plan)

    sp = sub.add_parser("rebind", help="Force unbind/bind of the UDC driver")
    sp.add_argument("--strict-unbind", action="store_true", help="Fail if unbind fails")
    sp.add_argument("--wait", type=float, default=0.0, help="Wait for the host to configure the gadget")
    sp.set_defaults(func=cmd_rebind)

    sp = sub.add_parser("bind", help="Bind the UDC driver")
    sp.set_defaults(func=cmd_bind)

    sp = sub.add_parser("unbind", help="Unbind the UDC driver")
    sp.set_defaults(func=cmd_bind)

    sp = sub.add_parser("serve", help="Run the HTTP control API")
    sp.add_argument("--host", default="0.0.0.0")
    sp.add_argument("--port", type=int, default=8000)
    sp.set_defaults(func=cmd_serve)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "verbose"):
        args.verbose = False
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
