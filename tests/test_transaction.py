"""Tests for the declared gadget change set, without touching the filesystem."""

import os

from hidgadget.changeset.model import WHEN_BEFORE_CHANGE, FileState
from hidgadget.gadget.items import DEFAULT_GADGET_CONFIG, GadgetConfigItem, ordered_items
from hidgadget.gadget.transaction import REORDER_SYMLINKS_KEY, UDC_KEY, GadgetTransaction

GADGET = "/cfg/usb_gadget/g"
C1 = GADGET + "/configs/c.1"


def _tx(disabled=()):
    return GadgetTransaction(
        udc="fc000000.usb",
        configfs_path="/cfg",
        dwc3_path="/dwc3",
        gadget_path=GADGET,
        config_c1_path=C1,
        ordered_items=ordered_items(DEFAULT_GADGET_CONFIG),
        is_enabled=lambda key: key not in disabled,
    )


def _by_key(tx):
    return {c.effective_key: c for c in tx.c.changes}


class TestWriteGadgetConfig:
    """GadgetTransaction.write_gadget_config() declarations."""

    def test_reorder_change_lists_linked_functions(self):
        tx = _tx()
        tx.write_gadget_config()
        tx.finalize()

        reorder = _by_key(tx)[REORDER_SYMLINKS_KEY]
        assert reorder.expected_state is FileState.SYMLINK_IN_ORDER_CONFIGFS
        assert [os.path.basename(l.path) for l in reorder.param_symlinks] == [
            "hid.usb0", "hid.usb1", "hid.usb2", "mass_storage.usb0",
        ]
        assert reorder.param_symlinks[0].target == GADGET + "/functions/hid.usb0"

    def test_udc_written_last(self):
        tx = _tx()
        tx.write_gadget_config()
        udc = _by_key(tx)[UDC_KEY]
        assert udc.path == GADGET + "/UDC"
        assert udc.expected_content == b"fc000000.usb"
        assert udc.depends_on == [REORDER_SYMLINKS_KEY]

    def test_linked_attributes_guarded_by_disable_changes(self):
        tx = _tx()
        tx.write_gadget_config()
        protocol = _by_key(tx)[GADGET + "/functions/hid.usb0/protocol"]
        assert protocol.before_change == [
            "disable-hid.usb0", "disable-hid.usb1", "disable-hid.usb2", "disable-mass_storage.usb0",
        ]

    def test_unlinked_items_have_no_guards(self):
        tx = _tx()
        tx.write_gadget_config()
        assert _by_key(tx)[GADGET + "/idVendor"].before_change == []
        assert _by_key(tx)[GADGET + "/functions/mass_storage.usb0/lun.0/file"].before_change == []

    def test_disabled_function(self):
        tx = _tx(disabled=("relative_mouse",))
        tx.write_gadget_config()
        changes = _by_key(tx)

        disable = changes["disable-hid.usb2"]
        assert disable.when == WHEN_BEFORE_CHANGE
        assert disable.expected_state is FileState.ABSENT
        assert disable.path == C1 + "/hid.usb2"
        assert GADGET + "/functions/hid.usb2/protocol" not in changes

    def test_no_linked_function_left(self):
        tx = _tx(disabled=("keyboard", "absolute_mouse", "relative_mouse", "mass_storage_base"))
        tx.write_gadget_config()
        tx.finalize()
        changes = _by_key(tx)

        assert REORDER_SYMLINKS_KEY not in changes
        disable_keys = ["disable-hid.usb0", "disable-hid.usb1", "disable-hid.usb2", "disable-mass_storage.usb0"]
        for key in disable_keys:
            assert changes[key].when == ""
        assert changes[UDC_KEY].depends_on == disable_keys

    def test_report_descriptor(self):
        tx = _tx()
        tx.write_gadget_config()
        changes = _by_key(tx)
        assert changes[GADGET + "/functions/hid.usb0/report_desc"].expected_state is FileState.FILE_CONTENT_MATCH
        assert changes[GADGET + "/functions/mass_storage.usb0/report_desc"].expected_state is FileState.ABSENT

    def test_finalize_is_idempotent(self):
        tx = _tx()
        tx.write_gadget_config()
        tx.finalize()
        n = len(tx.c)
        tx.finalize()
        assert len(tx.c) == n


class TestRebind:
    """GadgetTransaction.rebind_usb() declarations."""

    def test_unbind_then_bind(self):
        tx = _tx()
        tx.rebind_usb(ignore_unbind_error=True)
        unbind, bind = tx.c.changes

        assert unbind.path == "/dwc3/unbind"
        assert unbind.expected_state is FileState.FILE_WRITE
        assert unbind.ignore_errors
        assert unbind.depends_on == [UDC_KEY]
        assert bind.path == "/dwc3/bind"
        assert bind.depends_on == ["/dwc3/unbind"]
        assert not bind.ignore_errors


class TestGadgetConfigItem:
    """GadgetConfigItem defaults and layering."""

    def test_defaults_are_empty(self):
        item = GadgetConfigItem(order=5)
        assert dict(item.attrs) == {}
        assert dict(item.config_attrs) == {}
        assert not item.is_linked

    def test_with_config_attrs(self):
        base = DEFAULT_GADGET_CONFIG["base"]
        changed = base.with_config_attrs(MaxPower="100")
        assert changed.config_attrs["MaxPower"] == "100"
        assert base.config_attrs["MaxPower"] == "250"
        assert "MaxPower" not in changed.attrs
