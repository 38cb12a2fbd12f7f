import pytest

from lc3vm.lc3 import HEX, lc_bin, lc_hex, lc_int, plus, sext


@pytest.mark.parametrize("bits", [5, 6, 9, 11])
def test_sext_reproduces_signed_value(bits):
    for value in range(-(1 << (bits - 1)), 1 << (bits - 1)):
        assert lc_int(sext(value & ((1 << bits) - 1), bits)) == value


def test_sext_examples():
    assert sext(0b11111, 5) == 0xFFFF
    assert sext(0b10000, 5) == 0xFFF0
    assert sext(0b01111, 5) == 0x000F
    assert sext(0x100, 9) == 0xFF00
    assert sext(0x400, 11) == 0xFC00


def test_sext_ignores_bits_above_field():
    assert sext(0xFFE1, 5) == 0x0001


def test_lc_int_and_bin():
    assert lc_int(0xFFFF) == -1
    assert lc_int(0x8000) == -32768
    assert lc_int(0x7FFF) == 32767
    assert lc_bin(-1) == 0xFFFF
    assert lc_bin(0x12345) == 0x2345


def test_plus_wraps():
    assert plus(0xFFFF, 1) == 0
    assert plus(0x3000, 0xFFFF) == 0x2FFF


def test_hex_formatting():
    assert lc_hex(0x3000) == "x3000"
    assert lc_hex(-1) == "xFFFF"
    assert repr(HEX(0xfe00)) == "xFE00"
