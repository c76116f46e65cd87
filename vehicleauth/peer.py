"""State and metadata handling shared by signers and verifiers."""

from __future__ import annotations

import time
from typing import Optional

from vehicleauth.errors import AuthError, MessageFault, MetadataFieldTooLongError
from vehicleauth.messages import Domain, RoutableMessage, SignatureType, Tag
from vehicleauth.metadata import Metadata

LABEL_MESSAGE_AUTH = "authenticated command"
COUNTER_MAX = 0xFFFFFFFF
EPOCH_ID_LENGTH = 16
MAX_SECONDS_WITHOUT_COUNTER = 30
EPOCH_LENGTH = 1 << 30  # seconds

_UINT32_MASK = 0xFFFFFFFF


class Peer:
    """Common state of a signer or verifier talking over one session."""

    epoch_length = EPOCH_LENGTH

    def __init__(self, verifier_name: bytes, session, domain=Domain.BROADCAST):
        self.domain = domain
        self.verifier_name = verifier_name
        self.session = session
        self.counter = 0
        self.epoch = bytes(EPOCH_ID_LENGTH)
        # Wall-clock second at which the current epoch started; None if unset.
        self.time_zero: Optional[float] = None

    def timestamp(self) -> int:
        """Whole seconds elapsed since the start of the epoch, as a uint32."""
        start = 0.0 if self.time_zero is None else self.time_zero
        return int(time.time() - start) & _UINT32_MASK

    def extract_metadata(self, meta: Metadata, message: RoutableMessage, info, method) -> None:
        """Feed the authenticated metadata of message into meta."""
        meta.add(Tag.SIGNATURE_TYPE, bytes([int(method)]))

        # The message's own domain is used because the sender might use BROADCAST.
        destination = message.to_destination
        if destination is None or destination.domain is None:
            raise AuthError(MessageFault.INVALID_DOMAINS, "domain missing")
        domain = int(destination.domain)
        if not 0 <= domain <= 255:
            raise AuthError(MessageFault.INVALID_DOMAINS, "domain out of range")
        meta.add(Tag.DOMAIN, bytes([domain]))

        try:
            meta.add(Tag.PERSONALIZATION, self.verifier_name)
        except MetadataFieldTooLongError:
            raise AuthError(
                MessageFault.WRONG_PERSONALIZATION, "recipient name too long"
            ) from None

        expires_at = info.expires_at
        if expires_at > self.epoch_length or expires_at < 0:
            raise AuthError(MessageFault.BAD_PARAMETER, "out of bounds expiration time")

        meta.add(Tag.EPOCH, self.epoch)
        meta.add_uint32(Tag.EXPIRES_AT, expires_at)
        meta.add_uint32(Tag.COUNTER, info.counter)

        # Flags are only hashed when set, for compatibility with older senders.
        if message.flags > 0:
            meta.add_uint32(Tag.FLAGS, message.flags)

    def hmac_tag(self, message: RoutableMessage, hmac_data) -> bytes:
        """HMAC-SHA256 tag over the message metadata and payload."""
        meta = Metadata(self.session.new_hmac(LABEL_MESSAGE_AUTH))
        self.extract_metadata(meta, message, hmac_data, SignatureType.HMAC_PERSONALIZED)
        return meta.checksum(message.protobuf_message_as_bytes)

    def response_metadata(self, message: RoutableMessage, request_id, counter: int) -> bytes:
        """Digest of the metadata authenticated with an encrypted response."""
        meta = Metadata()
        meta.add(Tag.SIGNATURE_TYPE, bytes([SignatureType.AES_GCM_RESPONSE]))
        meta.add(Tag.DOMAIN, bytes([int(message.from_domain) & 0xFF]))
        meta.add(Tag.PERSONALIZATION, self.verifier_name)
        meta.add_uint32(Tag.COUNTER, counter)
        meta.add_uint32(Tag.FLAGS, message.flags)
        meta.add(Tag.REQUEST_HASH, request_id)
        meta.add_uint32(Tag.FAULT, message.signed_message_fault)
        return meta.checksum(None)