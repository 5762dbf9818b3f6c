from __future__ import annotations

import re

_HEX = re.compile(r"[+-]?[0-9a-f]+")


def hex_to_octal(value: str) -> str:
    """
    Convert a hex string ("0x1d6b", "0104") to a 4-digit octal string.

    Raises ValueError if the value is not hex.
    """
    value = value.lower().replace("0x", "", 1)
    if not _HEX.fullmatch(value):
        raise ValueError(f"not a hex value: {value!r}")
    return format(int(value, 16), "04o")


def compare_file_content(actual: bytes, expected: bytes, looser_match: bool = False) -> bool:
    """
    Decide whether the content read back from a configfs attribute is
    equivalent to the content we would write.

    configfs does not echo values verbatim: most attributes gain a trailing
    newline, and USB id attributes (idVendor, idProduct, ...) are reported as
    "0xNNNN\\n". A 4-byte expected value is therefore also compared against
    the octal rendering of the reported hex value.
    """
    if actual == expected:
        return True

    if len(actual) == len(expected) + 1 and actual[: len(expected)] == expected and actual[-1:] == b"\n":
        return True

    if len(expected) == 4:
        if len(actual) < 6 or len(actual) > 7:
            return False

        if len(actual) == 7 and actual[6:] == b"\n":
            actual = actual[:6]

        try:
            octal = hex_to_octal(actual.decode())
        except (UnicodeDecodeError, ValueError):
            return False

        if octal.encode() == expected:
            return True

    if looser_match:
        return actual.decode(errors="replace").strip() == expected.decode(errors="replace").strip()

    return False
