import pytest

from vehicleauth.messages import (
    DecodeError,
    Destination,
    Domain,
    GcmPersonalizedData,
    GcmResponseData,
    HmacPersonalizedData,
    RoutableMessage,
    SessionInfo,
    SessionInfoTag,
    SignatureData,
    SignatureType,
    request_id,
)

KNOWN_MESSAGE = bytes([
    0x32, 0x02, 0x08, 0x02, 0x3a, 0x02, 0x08, 0x00, 0x52, 0x59, 0x29, 0x6d,
    0x58, 0x7d, 0x13, 0x0d, 0x34, 0xd7, 0x4d, 0x6d, 0x5c, 0x62, 0x8c, 0x73,
    0xc1, 0xf8, 0xef, 0x99, 0xcc, 0x4a, 0xe1, 0xc9, 0x5b, 0x97, 0x67, 0x14,
    0x74, 0x98, 0x0c, 0xcc, 0x79, 0x46, 0xa9, 0x0a, 0x2f, 0x79, 0x71, 0xa5,
    0xc8, 0x37, 0xb9, 0x6c, 0x9c, 0xc1, 0xe8, 0x07, 0x5d, 0x1a, 0xab, 0x92,
    0xbc, 0x85, 0x57, 0xb7, 0xfd, 0xf2, 0xdc, 0xf9, 0xdd, 0xbb, 0x90, 0xe2,
    0x36, 0x24, 0x6d, 0xb6, 0x99, 0x78, 0x8e, 0x58, 0x5e, 0x8b, 0x0e, 0xa8,
    0x47, 0x52, 0xe0, 0x09, 0x0c, 0xc8, 0x0c, 0x43, 0x84, 0xd2, 0x7c, 0xa6,
    0xfc, 0xdd, 0x21, 0x6a, 0x47, 0x0a, 0x06, 0x12, 0x04, 0xbb, 0x0c, 0xa3,
    0x71, 0x2a, 0x3d, 0x0a, 0x10, 0xea, 0xab, 0xe3, 0x01, 0xb4, 0xb4, 0xa1,
    0x24, 0x31, 0x18, 0xa4, 0x08, 0x25, 0x22, 0x01, 0x15, 0x12, 0x0c, 0x45,
    0xd2, 0x9a, 0xf6, 0x64, 0xe2, 0xff, 0x8f, 0xd4, 0x92, 0x18, 0xb7, 0x18,
    0xff, 0xff, 0xff, 0xff, 0x0f, 0x25, 0x50, 0xc3, 0x00, 0x00, 0x2a, 0x10,
    0x6d, 0x84, 0x67, 0x05, 0xba, 0x5c, 0x14, 0x3f, 0x94, 0x25, 0x72, 0x75,
    0xa2, 0xca, 0x70, 0x1f,
])

KNOWN_EPOCH = bytes([
    0xea, 0xab, 0xe3, 0x01, 0xb4, 0xb4, 0xa1, 0x24, 0x31, 0x18, 0xa4, 0x08,
    0x25, 0x22, 0x01, 0x15,
])


def _hmac_message(domain, tag):
    return RoutableMessage(
        to_destination=Destination(domain=domain),
        signature_data=SignatureData(sig_type=HmacPersonalizedData(tag=tag)),
    )


def test_request_id_vehicle_security_truncates_tag():
    tag = bytes(range(19))
    message = _hmac_message(Domain.VEHICLE_SECURITY, tag)
    rid = request_id(message)
    assert len(rid) == 17
    assert rid[0] == SignatureType.HMAC_PERSONALIZED
    assert rid[1:] == tag[:16]


def test_request_id_infotainment_keeps_full_tag():
    tag = bytes(range(19))
    message = _hmac_message(Domain.INFOTAINMENT, tag)
    rid = request_id(message)
    assert rid[0] == SignatureType.HMAC_PERSONALIZED
    assert rid[1:] == tag


def test_request_id_gcm():
    message = RoutableMessage(
        signature_data=SignatureData(sig_type=GcmPersonalizedData(tag=b"\x01\x02\x03")),
    )
    assert request_id(message) == b"\x05\x01\x02\x03"


def test_request_id_unsigned_or_other_types():
    assert request_id(RoutableMessage()) is None
    assert request_id(RoutableMessage(signature_data=SignatureData())) is None
    response = RoutableMessage(signature_data=SignatureData(sig_type=GcmResponseData(tag=b"x")))
    assert request_id(response) is None


def test_session_info_encoding_is_pinned():
    info = SessionInfo(counter=1, public_key=b"\xaa\xbb", clock_time=0x10)
    assert info.encode() == b"\x08\x01\x12\x02\xaa\xbb\x25\x10\x00\x00\x00"


def test_session_info_round_trip():
    info = SessionInfo(
        counter=0xFFFFFFFF,
        public_key=b"\x04" + bytes(64),
        epoch=bytes(range(16)),
        clock_time=12345,
        status=1,
        handle=0xDEADBEEF,
    )
    assert SessionInfo.decode(info.encode()) == info


def test_session_info_empty():
    assert SessionInfo().encode() == b""
    assert SessionInfo.decode(b"") == SessionInfo()


def test_session_info_corrupted_first_byte_rejected():
    encoded = bytearray(SessionInfo(public_key=b"\x04abc", epoch=bytes(16)).encode())
    encoded[0] ^= 1
    with pytest.raises(DecodeError):
        SessionInfo.decode(bytes(encoded))


def test_session_info_truncated_rejected():
    encoded = SessionInfo(public_key=b"\x04abcdef").encode()
    with pytest.raises(DecodeError):
        SessionInfo.decode(encoded[:-2])


def test_decode_known_message():
    message = RoutableMessage.decode(KNOWN_MESSAGE)
    assert message.to_domain == Domain.VEHICLE_SECURITY
    assert message.from_destination == Destination(domain=0)
    assert len(message.protobuf_message_as_bytes) == 89
    gcm = message.signature_data.sig_type
    assert isinstance(gcm, GcmPersonalizedData)
    assert gcm.epoch == KNOWN_EPOCH
    assert gcm.counter == 0xFFFFFFFF
    assert gcm.expires_at == 50000
    assert gcm.nonce == bytes.fromhex("45d29af664e2ff8fd49218b7")
    assert gcm.tag == bytes.fromhex("6d846705ba5c143f94257275a2ca701f")


def test_routable_message_round_trip():
    message = RoutableMessage(
        to_destination=Destination(domain=Domain.INFOTAINMENT),
        from_destination=Destination(routing_address=b"\x01\x02\x03"),
        protobuf_message_as_bytes=b"hello world",
        signature_data=SignatureData(
            signer_public_key=b"\x04key",
            sig_type=HmacPersonalizedData(epoch=bytes(16), counter=7, expires_at=99, tag=b"t" * 32),
        ),
        signed_message_fault=5,
        uuid=b"uuid",
        flags=1,
    )
    assert RoutableMessage.decode(message.encode()) == message


def test_session_info_payload_and_tag_round_trip():
    message = RoutableMessage(
        session_info=b"\x08\x01",
        signature_data=SignatureData(sig_type=SessionInfoTag(tag=b"abc")),
    )
    decoded = RoutableMessage.decode(message.encode())
    assert decoded.session_info == b"\x08\x01"
    assert decoded.protobuf_message_as_bytes is None
    assert decoded.signature_data.sig_type == SessionInfoTag(tag=b"abc")


def test_domain_defaults_to_broadcast():
    assert RoutableMessage().to_domain == Domain.BROADCAST
    message = RoutableMessage(to_destination=Destination(routing_address=b"\x01"))
    assert message.to_domain == Domain.BROADCAST