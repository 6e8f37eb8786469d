import struct

import pytest

from couch_odom.cdr import CdrReader


def _make_cdr(*fields: bytes, little: bool = True) -> bytes:
    header = b"\x00\x01\x00\x00" if little else b"\x00\x00\x00\x00"
    return header + b"".join(fields)


@pytest.mark.parametrize("value", [3.14, -273.15, 0.0])
def test_float64(value: float) -> None:
    r = CdrReader(_make_cdr(struct.pack("<d", value)))
    assert r.float64() == pytest.approx(value)


def test_big_endian_payload() -> None:
    r = CdrReader(_make_cdr(struct.pack(">i", -42), struct.pack(">I", 7), little=False))
    assert r.int32() == -42
    assert r.uint32() == 7


def test_string() -> None:
    encoded = "base_link".encode("utf-8") + b"\x00"
    r = CdrReader(_make_cdr(struct.pack("<I", len(encoded)) + encoded))
    assert r.string() == "base_link"


def test_alignment() -> None:
    r = CdrReader(_make_cdr(b"\x07" + b"\x00" * 7 + struct.pack("<d", 2.718)))
    assert r.uint8() == 7
    assert r.float64() == pytest.approx(2.718)


def test_boolean_then_uint32() -> None:
    r = CdrReader(_make_cdr(b"\x01\x00\x00\x00" + struct.pack("<I", 16)))
    assert r.boolean() is True
    assert r.uint32() == 16


def test_byte_sequence() -> None:
    r = CdrReader(_make_cdr(struct.pack("<I", 3) + b"abc"))
    assert r.byte_sequence() == b"abc"


def test_float64_array() -> None:
    values = [1.0, 2.0, 3.0]
    r = CdrReader(_make_cdr(b"".join(struct.pack("<d", v) for v in values)))
    assert r.float64_array(3) == pytest.approx(values)


def test_stamp() -> None:
    r = CdrReader(_make_cdr(struct.pack("<iI", 12, 500_000_000)))
    assert r.stamp() == pytest.approx(12.5)


def test_truncated_header() -> None:
    with pytest.raises(ValueError):
        CdrReader(b"\x00\x01")
