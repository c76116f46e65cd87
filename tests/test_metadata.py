import hashlib
import hmac

import pytest

from vehicleauth.errors import MetadataFieldTooLongError
from vehicleauth.messages import Tag
from vehicleauth.metadata import Metadata

ITEMS = [
    (Tag.SIGNATURE_TYPE, b"\x05"),
    (Tag.DOMAIN, b"\x02"),
    (Tag.PERSONALIZATION, b"testVIN"),
    (Tag.EPOCH, bytes([0xaa, 0xda, 0x92, 0x8a, 0x4f, 0x21, 0x5f, 0x55,
                       0xf9, 0xe6, 0xe4, 0x5e, 0x66, 0xb6, 0x52, 0x1e])),
    (Tag.EXPIRES_AT, b"\x00\x00\x0e\x74"),
    (Tag.COUNTER, b"\x00\x00\x05\x3a"),
]


def _fill(meta):
    for tag, value in ITEMS:
        meta.add(tag, value)


def test_out_of_order():
    meta = Metadata()
    meta.add(Tag.DOMAIN, b"hello")
    meta.add(Tag.PERSONALIZATION, b"world")
    with pytest.raises(ValueError, match="increasing tag order"):
        meta.add(Tag.DOMAIN, b"world")


def test_value_too_long():
    meta = Metadata()
    with pytest.raises(MetadataFieldTooLongError):
        meta.add(Tag.DOMAIN, bytes(256))


def test_value_of_255_bytes_accepted():
    meta = Metadata()
    meta.add(Tag.DOMAIN, bytes(255))
    assert meta.contains([Tag.DOMAIN])


def test_checksum():
    correct = bytes([
        0xab, 0xab, 0x04, 0xd8, 0x04, 0x49, 0x98, 0x13, 0x38, 0x2e, 0xfd, 0x74,
        0xa0, 0x67, 0x91, 0xce, 0x2d, 0xe7, 0x77, 0x43, 0x96, 0x03, 0x24, 0x6d,
        0xfb, 0xaa, 0x83, 0x92, 0xca, 0x05, 0x86, 0x8e,
    ])
    meta = Metadata()
    _fill(meta)
    assert meta.checksum(None) == correct


def test_sha512_checksum():
    correct = bytes([
        0xdf, 0x4a, 0x60, 0xe0, 0x3f, 0xd4, 0xf7, 0x1a, 0x83, 0xe6, 0xb5, 0x6c,
        0xcf, 0x27, 0xcc, 0xf3, 0x90, 0x26, 0x9b, 0xa3, 0xfc, 0xcf, 0xaf, 0xd9,
        0xcb, 0x3a, 0x09, 0x25, 0xfc, 0x36, 0x84, 0x38, 0x66, 0xb4, 0x32, 0x66,
        0x55, 0xf1, 0xc9, 0xd5, 0x39, 0xc7, 0xff, 0xc6, 0xf3, 0x31, 0xba, 0x69,
        0x3e, 0x1c, 0x62, 0xd2, 0x37, 0xcb, 0x6c, 0xb5, 0xd9, 0xe6, 0x04, 0x39,
        0xf9, 0x8f, 0x22, 0x83,
    ])
    meta = Metadata(hashlib.sha512())
    _fill(meta)
    assert meta.checksum(None) == correct


def test_add_uint32_matches_big_endian_bytes():
    a = Metadata()
    a.add_uint32(Tag.COUNTER, 0x053A)
    b = Metadata()
    b.add(Tag.COUNTER, b"\x00\x00\x05\x3a")
    assert a.checksum(b"x") == b.checksum(b"x")


def test_none_value_is_skipped():
    meta = Metadata()
    meta.add(Tag.DOMAIN, None)
    assert not meta.contains([Tag.DOMAIN])
    assert meta.checksum(None) == hashlib.sha256(b"\xff").digest()


def test_contains():
    meta = Metadata()
    meta.add(Tag.SIGNATURE_TYPE, b"\x05")
    meta.add(Tag.EPOCH, b"e")
    assert meta.contains([Tag.SIGNATURE_TYPE, Tag.EPOCH])
    assert meta.contains([])
    assert not meta.contains([Tag.SIGNATURE_TYPE, Tag.COUNTER])


def test_checksum_includes_message_and_works_with_hmac():
    key = b"k" * 16
    meta = Metadata(hmac.new(key, digestmod=hashlib.sha256))
    meta.add(Tag.SIGNATURE_TYPE, b"\x06")
    expected = hmac.new(key, b"\x00\x01\x06\xffpayload", hashlib.sha256).digest()
    assert meta.checksum(b"payload") == expected