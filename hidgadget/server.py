from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hidgadget.errors import ChangeSetError, GadgetError
from hidgadget.gadget.config import Config, Devices, GadgetSettings, load_settings, save_settings
from hidgadget.gadget.usbgadget import UsbGadget
from hidgadget.hid.udc import get_udcs
from hidgadget.util.log import get_logger, setup_logging
from hidgadget.util.paths import SETTINGS_FILE

log = get_logger("hidgadget.server")


# Global state
class AppState:
    settings_path: Path = SETTINGS_FILE
    settings: Optional[GadgetSettings] = None
    gadget: Optional[UsbGadget] = None


state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(verbose=True)
    log.info("Server starting...")
    if state.settings is None:
        state.settings = load_settings(state.settings_path)
    if state.gadget is None:
        s = state.settings
        state.gadget = UsbGadget(name=s.name, devices=s.usb_devices, config=s.usb_config, udc=s.udc)
        await asyncio.to_thread(state.gadget.init)
    yield
    log.info("Server shutting down...")


app = FastAPI(lifespan=lifespan)


def _gadget() -> UsbGadget:
    if state.gadget is None:
        raise RuntimeError("gadget not initialized")
    return state.gadget


def _error(e: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"error": str(e)}, status_code=status_code)


def _save() -> None:
    if state.settings is not None:
        save_settings(state.settings, state.settings_path)


@app.get("/usb/state")
def usb_state():
    g = _gadget()
    return {"udc": g.udc, "state": g.get_usb_state()}


@app.get("/usb/config")
def get_usb_config():
    return (_gadget().custom_config or Config()).model_dump()


@app.put("/usb/config")
def put_usb_config(cfg: Config):
    g = _gadget()
    g.set_gadget_config(cfg)
    if state.settings is not None:
        state.settings.usb_config = cfg
    _save()
    try:
        g.update_gadget_config()
    except GadgetError as e:
        return _error(e)
    return cfg.model_dump()


@app.get("/usb/devices")
def get_usb_devices():
    return _gadget().enabled_devices.model_dump()


@app.put("/usb/devices")
def put_usb_devices(devices: Devices):
    g = _gadget()
    g.set_gadget_devices(devices)
    if state.settings is not None:
        state.settings.usb_devices = devices
    _save()
    try:
        g.update_gadget_config()
    except GadgetError as e:
        return _error(e)
    return devices.model_dump()


class RebindRequest(BaseModel):
    ignore_unbind_error: bool = True


@app.post("/usb/rebind")
def rebind(req: Optional[RebindRequest] = None):
    req = req or RebindRequest()
    try:
        _gadget().rebind_usb(req.ignore_unbind_error)
    except ChangeSetError as e:
        return _error(e)
    return {"status": "ok"}


@app.get("/usb/udc")
def get_udc():
    g = _gadget()
    try:
        bound: Optional[bool] = g.is_udc_bound()
    except GadgetError as e:
        log.warning("failed to check udc binding: %s", e)
        bound = None
    return {
        "udc": g.udc,
        "available": get_udcs(g.udc_platform_dir),
        "bound": bound,
    }


@app.post("/usb/udc/bind")
def bind_udc():
    try:
        _gadget().bind_udc()
    except GadgetError as e:
        return _error(e)
    return {"status": "bound"}


@app.post("/usb/udc/unbind")
def unbind_udc():
    try:
        _gadget().unbind_udc()
    except GadgetError as e:
        return _error(e)
    return {"status": "unbound"}


@app.get("/usb/path/{item}")
def item_path(item: str):
    g = _gadget()
    try:
        path = g.get_path(item)
    except GadgetError as e:
        return _error(e, status_code=404)
    cfg_item = g.gadget_config()[item]
    return {
        "item": item,
        "path": path,
        "config_path": g.get_config_path(item) if cfg_item.config_path is not None else None,
    }


def main():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
