"""Message types exchanged between signers and verifiers, with wire encoding."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Union

_UINT32_MASK = 0xFFFFFFFF

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_BYTES = 2
_WIRE_FIXED32 = 5


class DecodeError(ValueError):
    """Raised when encoded message bytes are malformed."""


class Tag(enum.IntEnum):
    """Metadata tags, added to the authenticated metadata in increasing order."""

    SIGNATURE_TYPE = 0
    DOMAIN = 1
    PERSONALIZATION = 2
    EPOCH = 3
    EXPIRES_AT = 4
    COUNTER = 5
    CHALLENGE = 6
    FLAGS = 7
    REQUEST_HASH = 8
    FAULT = 9
    END = 255


class SignatureType(enum.IntEnum):
    """Authentication methods."""

    AES_GCM = 0
    AES_GCM_PERSONALIZED = 5
    HMAC = 6
    HMAC_PERSONALIZED = 8
    AES_GCM_RESPONSE = 9


class Domain(enum.IntEnum):
    """Message destinations inside a vehicle."""

    BROADCAST = 0
    VEHICLE_SECURITY = 2
    INFOTAINMENT = 3


# --- wire helpers -----------------------------------------------------------


def _varint(value: int) -> bytes:
    if value < 0:
        value &= (1 << 64) - 1
    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def _key(number: int, wire_type: int) -> bytes:
    return _varint((number << 3) | wire_type)


def _uint_field(number: int, value: int) -> bytes:
    return _key(number, _WIRE_VARINT) + _varint(value)


def _bytes_field(number: int, value: bytes) -> bytes:
    return _key(number, _WIRE_BYTES) + _varint(len(value)) + bytes(value)


def _fixed32_field(number: int, value: int) -> bytes:
    return _key(number, _WIRE_FIXED32) + struct.pack("<I", value & _UINT32_MASK)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise DecodeError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & ((1 << 64) - 1), pos
    raise DecodeError("varint too long")


def _fields(data: bytes) -> Iterator[tuple[int, int, Union[int, bytes]]]:
    data = bytes(data)
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        number, wire_type = key >> 3, key & 7
        if number == 0:
            raise DecodeError("invalid field number 0")
        if wire_type == _WIRE_VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _WIRE_FIXED64:
            if pos + 8 > len(data):
                raise DecodeError("truncated fixed64")
            value = data[pos:pos + 8]
            pos += 8
        elif wire_type == _WIRE_BYTES:
            length, pos = _read_varint(data, pos)
            if pos + length > len(data):
                raise DecodeError("truncated length-delimited field")
            value = data[pos:pos + length]
            pos += length
        elif wire_type == _WIRE_FIXED32:
            if pos + 4 > len(data):
                raise DecodeError("truncated fixed32")
            value = struct.unpack_from("<I", data, pos)[0]
            pos += 4
        else:
            raise DecodeError(f"unsupported wire type {wire_type}")
        yield number, wire_type, value


def _expect(wire_type: int, expected: int, number: int) -> None:
    if wire_type != expected:
        raise DecodeError(f"field {number} has wire type {wire_type}, expected {expected}")


def _uint32(wire_type: int, value, number: int) -> int:
    _expect(wire_type, _WIRE_VARINT, number)
    return value & _UINT32_MASK


def _fixed32(wire_type: int, value, number: int) -> int:
    _expect(wire_type, _WIRE_FIXED32, number)
    return value


def _blob(wire_type: int, value, number: int) -> bytes:
    _expect(wire_type, _WIRE_BYTES, number)
    return bytes(value)


# --- messages ---------------------------------------------------------------


@dataclass
class SessionInfo:
    """Verifier state a signer needs to produce acceptable messages."""

    counter: int = 0
    public_key: bytes = b""
    epoch: bytes = b""
    clock_time: int = 0
    status: int = 0
    handle: int = 0

    def encode(self) -> bytes:
        out = bytearray()
        if self.counter:
            out += _uint_field(1, self.counter)
        if self.public_key:
            out += _bytes_field(2, self.public_key)
        if self.epoch:
            out += _bytes_field(3, self.epoch)
        if self.clock_time:
            out += _fixed32_field(4, self.clock_time)
        if self.status:
            out += _uint_field(5, self.status)
        if self.handle:
            out += _uint_field(6, self.handle)
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "SessionInfo":
        info = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                info.counter = _uint32(wire_type, value, number)
            elif number == 2:
                info.public_key = _blob(wire_type, value, number)
            elif number == 3:
                info.epoch = _blob(wire_type, value, number)
            elif number == 4:
                info.clock_time = _fixed32(wire_type, value, number)
            elif number == 5:
                info.status = _uint32(wire_type, value, number)
            elif number == 6:
                info.handle = _uint32(wire_type, value, number)
        return info


@dataclass
class Destination:
    """Either a domain or a routing address."""

    domain: Optional[int] = None
    routing_address: Optional[bytes] = None

    def encode(self) -> bytes:
        if self.domain is not None:
            return _uint_field(1, self.domain)
        if self.routing_address is not None:
            return _bytes_field(2, self.routing_address)
        return b""

    @classmethod
    def decode(cls, data) -> "Destination":
        dest = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                _expect(wire_type, _WIRE_VARINT, number)
                dest.domain = value & _UINT32_MASK
                dest.routing_address = None
            elif number == 2:
                dest.routing_address = _blob(wire_type, value, number)
                dest.domain = None
        return dest


@dataclass
class GcmPersonalizedData:
    """AES-GCM parameters of an encrypted command."""

    epoch: Optional[bytes] = None
    nonce: bytes = b""
    counter: int = 0
    expires_at: int = 0
    tag: bytes = b""

    def encode(self) -> bytes:
        out = bytearray()
        if self.epoch:
            out += _bytes_field(1, self.epoch)
        if self.nonce:
            out += _bytes_field(2, self.nonce)
        if self.counter:
            out += _uint_field(3, self.counter)
        if self.expires_at:
            out += _fixed32_field(4, self.expires_at)
        if self.tag:
            out += _bytes_field(5, self.tag)
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "GcmPersonalizedData":
        result = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                result.epoch = _blob(wire_type, value, number)
            elif number == 2:
                result.nonce = _blob(wire_type, value, number)
            elif number == 3:
                result.counter = _uint32(wire_type, value, number)
            elif number == 4:
                result.expires_at = _fixed32(wire_type, value, number)
            elif number == 5:
                result.tag = _blob(wire_type, value, number)
        return result


@dataclass
class HmacPersonalizedData:
    """HMAC parameters of an authenticated but unencrypted command."""

    epoch: Optional[bytes] = None
    counter: int = 0
    expires_at: int = 0
    tag: bytes = b""

    def encode(self) -> bytes:
        out = bytearray()
        if self.epoch:
            out += _bytes_field(1, self.epoch)
        if self.counter:
            out += _uint_field(2, self.counter)
        if self.expires_at:
            out += _fixed32_field(3, self.expires_at)
        if self.tag:
            out += _bytes_field(4, self.tag)
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "HmacPersonalizedData":
        result = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                result.epoch = _blob(wire_type, value, number)
            elif number == 2:
                result.counter = _uint32(wire_type, value, number)
            elif number == 3:
                result.expires_at = _fixed32(wire_type, value, number)
            elif number == 4:
                result.tag = _blob(wire_type, value, number)
        return result


@dataclass
class GcmResponseData:
    """AES-GCM parameters of an encrypted verifier response."""

    nonce: bytes = b""
    counter: int = 0
    tag: bytes = b""

    def encode(self) -> bytes:
        out = bytearray()
        if self.nonce:
            out += _bytes_field(1, self.nonce)
        if self.counter:
            out += _uint_field(2, self.counter)
        if self.tag:
            out += _bytes_field(3, self.tag)
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "GcmResponseData":
        result = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                result.nonce = _blob(wire_type, value, number)
            elif number == 2:
                result.counter = _uint32(wire_type, value, number)
            elif number == 3:
                result.tag = _blob(wire_type, value, number)
        return result


@dataclass
class SessionInfoTag:
    """HMAC tag over encoded session info."""

    tag: bytes = b""

    def encode(self) -> bytes:
        return _bytes_field(1, self.tag) if self.tag else b""

    @classmethod
    def decode(cls, data) -> "SessionInfoTag":
        result = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                result.tag = _blob(wire_type, value, number)
        return result


SigType = Union[GcmPersonalizedData, HmacPersonalizedData, GcmResponseData, SessionInfoTag]

_SIG_TYPE_FIELDS = {
    GcmPersonalizedData: 5,
    SessionInfoTag: 6,
    HmacPersonalizedData: 8,
    GcmResponseData: 9,
}
_SIG_TYPE_BY_FIELD = {number: kind for kind, number in _SIG_TYPE_FIELDS.items()}


@dataclass
class SignatureData:
    """Signer identity plus the parameters of one authentication method."""

    signer_public_key: Optional[bytes] = None
    sig_type: Optional[SigType] = None

    def encode(self) -> bytes:
        out = bytearray()
        if self.signer_public_key is not None:
            out += _bytes_field(1, _bytes_field(1, self.signer_public_key))
        if self.sig_type is not None:
            out += _bytes_field(_SIG_TYPE_FIELDS[type(self.sig_type)], self.sig_type.encode())
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "SignatureData":
        result = cls()
        for number, wire_type, value in _fields(data):
            if number == 1:
                identity = _blob(wire_type, value, number)
                result.signer_public_key = None
                for inner_number, inner_type, inner_value in _fields(identity):
                    if inner_number == 1:
                        result.signer_public_key = _blob(inner_type, inner_value, inner_number)
            elif number in _SIG_TYPE_BY_FIELD:
                result.sig_type = _SIG_TYPE_BY_FIELD[number].decode(_blob(wire_type, value, number))
        return result


@dataclass
class RoutableMessage:
    """A message routed to a vehicle domain, optionally authenticated."""

    to_destination: Optional[Destination] = None
    from_destination: Optional[Destination] = None
    protobuf_message_as_bytes: Optional[bytes] = None
    session_info: Optional[bytes] = None
    signature_data: Optional[SignatureData] = None
    signed_message_fault: int = 0
    uuid: bytes = b""
    flags: int = 0

    @property
    def to_domain(self) -> int:
        """Destination domain, or BROADCAST when none is set."""
        return _domain_of(self.to_destination)

    @property
    def from_domain(self) -> int:
        """Source domain, or BROADCAST when none is set."""
        return _domain_of(self.from_destination)

    def encode(self) -> bytes:
        out = bytearray()
        if self.to_destination is not None:
            out += _bytes_field(6, self.to_destination.encode())
        if self.from_destination is not None:
            out += _bytes_field(7, self.from_destination.encode())
        if self.protobuf_message_as_bytes is not None:
            out += _bytes_field(10, self.protobuf_message_as_bytes)
        if self.signed_message_fault:
            out += _bytes_field(12, _uint_field(2, self.signed_message_fault))
        if self.signature_data is not None:
            out += _bytes_field(13, self.signature_data.encode())
        if self.session_info is not None:
            out += _bytes_field(15, self.session_info)
        if self.uuid:
            out += _bytes_field(51, self.uuid)
        if self.flags:
            out += _uint_field(52, self.flags)
        return bytes(out)

    @classmethod
    def decode(cls, data) -> "RoutableMessage":
        msg = cls()
        for number, wire_type, value in _fields(data):
            if number == 6:
                msg.to_destination = Destination.decode(_blob(wire_type, value, number))
            elif number == 7:
                msg.from_destination = Destination.decode(_blob(wire_type, value, number))
            elif number == 10:
                msg.protobuf_message_as_bytes = _blob(wire_type, value, number)
                msg.session_info = None
            elif number == 12:
                for inner_number, inner_type, inner_value in _fields(_blob(wire_type, value, number)):
                    if inner_number == 2:
                        msg.signed_message_fault = _uint32(inner_type, inner_value, inner_number)
            elif number == 13:
                msg.signature_data = SignatureData.decode(_blob(wire_type, value, number))
            elif number == 15:
                msg.session_info = _blob(wire_type, value, number)
                msg.protobuf_message_as_bytes = None
            elif number == 51:
                msg.uuid = _blob(wire_type, value, number)
            elif number == 52:
                msg.flags = _uint32(wire_type, value, number)
        return msg


def _domain_of(destination: Optional[Destination]) -> int:
    if destination is None or destination.domain is None:
        return Domain.BROADCAST
    return destination.domain


def request_id(message: RoutableMessage) -> Optional[bytes]:
    """Identify the request a response belongs to, or None if it is unsigned."""
    sig_data = message.signature_data
    if sig_data is None or sig_data.sig_type is None:
        return None
    sig = sig_data.sig_type
    if isinstance(sig, GcmPersonalizedData):
        return bytes([SignatureType.AES_GCM_PERSONALIZED]) + sig.tag
    if isinstance(sig, HmacPersonalizedData):
        tag = sig.tag
        if message.to_domain == Domain.VEHICLE_SECURITY:
            tag = tag[:16]
        return bytes([SignatureType.HMAC_PERSONALIZED]) + tag
    return None