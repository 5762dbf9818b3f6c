"""Tests for configfs attribute content comparison."""

import pytest

from hidgadget.changeset.content import compare_file_content, hex_to_octal


class TestHexToOctal:
    """hex_to_octal() conversions."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0x0104", "0404"),
            ("0104", "0404"),
            ("0X1D6B", "16553"),
            ("0x0", "0000"),
        ],
    )
    def test_converts(self, value, expected):
        assert hex_to_octal(value) == expected

    def test_rejects_non_hex(self):
        with pytest.raises(ValueError):
            hex_to_octal("zz")


class TestCompareFileContent:
    """compare_file_content() equivalence rules."""

    def test_exact_match(self):
        assert compare_file_content(b"1", b"1")

    def test_trailing_newline_is_tolerated(self):
        assert compare_file_content(b"JetKVM\n", b"JetKVM")

    def test_only_one_trailing_newline(self):
        assert not compare_file_content(b"JetKVM\n\n", b"JetKVM")

    def test_usb_id_reported_as_hex(self):
        # idProduct written as "0104" reads back as "0x0104\n"
        assert compare_file_content(b"0x0104\n", b"0404")

    def test_usb_id_without_newline(self):
        assert compare_file_content(b"0x0104", b"0404")

    def test_usb_id_mismatch(self):
        assert not compare_file_content(b"0x0105\n", b"0404")

    def test_four_byte_expected_with_odd_length_is_not_loose_matched(self):
        # length check happens before the looser comparison
        assert not compare_file_content(b"abcd  ", b"abcd", looser_match=False)
        assert not compare_file_content(b" abcd", b"abcd", looser_match=True)

    def test_looser_match_ignores_whitespace(self):
        assert compare_file_content(
            b"hidgadget Virtual Media   \n", b"hidgadget Virtual Media", looser_match=True
        )

    def test_looser_match_off(self):
        assert not compare_file_content(b"hidgadget Virtual Media   \n", b"hidgadget Virtual Media")

    def test_different_content(self):
        assert not compare_file_content(b"250\n", b"100")
