"""HID report descriptors written to functions/hid.usbN/report_desc."""

# Boot keyboard (63 bytes) from the kernel gadget_hid docs:
# 8 modifier bits, 1 reserved byte, 5 LED output bits + 3 padding, 6 keycodes
KEYBOARD_REPORT_DESC = bytes.fromhex(
    "05 01 09 06 a1 01 05 07 19 e0 29 e7 15 00 25 01 75 01 95 08 81 02 "
    "95 01 75 08 81 03 95 05 75 01 05 08 19 01 29 05 91 02 95 01 75 03 "
    "91 03 95 06 75 08 15 00 25 65 05 07 19 00 29 65 81 00 c0"
)

# Absolute mouse with two reports:
#   id 1: 3 buttons + 5 padding bits, X/Y as 16-bit 0..32767
#   id 2: relative wheel, -127..127 (physical min/max reset to 0)
ABSOLUTE_MOUSE_REPORT_DESC = bytes.fromhex(
    "05 01 09 02 a1 01 "
    "85 01 09 01 a1 00 05 09 19 01 29 03 15 00 25 01 75 01 95 03 81 02 "
    "95 01 75 05 81 03 05 01 09 30 09 31 16 00 00 26 ff 7f 36 00 00 46 "
    "ff 7f 75 10 95 02 81 02 c0 "
    "85 02 09 38 15 81 25 7f 35 00 45 00 75 08 95 01 81 06 "
    "c0"
)

# Boot-compatible relative mouse: 8 buttons, then X, Y, wheel as int8.
# Pointer/Physical collection is required by Apple Recovery.
RELATIVE_MOUSE_REPORT_DESC = bytes.fromhex(
    "05 01 09 02 a1 01 09 01 a1 00 "
    "05 09 19 01 29 08 15 00 25 01 95 08 75 01 81 02 "
    "05 01 09 30 09 31 09 38 15 81 25 7f 75 08 95 03 81 06 "
    "c0 c0"
)
