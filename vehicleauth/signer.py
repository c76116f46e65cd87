"""Signers that authenticate commands for a verifier, and a dispatcher for many verifiers."""

from __future__ import annotations

import hmac
import time
from datetime import datetime, timedelta
from typing import Optional, Union

from vehicleauth.errors import AuthError, MessageFault, MetadataFieldTooLongError
from vehicleauth.messages import (
    DecodeError,
    GcmPersonalizedData,
    GcmResponseData,
    HmacPersonalizedData,
    RoutableMessage,
    SessionInfo,
    SignatureData,
    SignatureType,
)
from vehicleauth.metadata import Metadata
from vehicleauth.peer import COUNTER_MAX, EPOCH_ID_LENGTH, Peer

_UINT32_MASK = 0xFFFFFFFF

Duration = Union[int, float, timedelta]
Moment = Union[int, float, datetime]


def _seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _timestamp(value: Moment) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


def _overlay(current: bytes, new: Optional[bytes]) -> bytes:
    """Copy new over the start of current, keeping current's length."""
    head = bytes(new or b"")[: len(current)]
    return head + current[len(head):]


def _decode_session_info(encoded_info) -> SessionInfo:
    try:
        return SessionInfo.decode(encoded_info)
    except DecodeError:
        raise AuthError(MessageFault.DECODING, "invalid session info protobuf") from None


class Signer(Peer):
    """Encrypts or authenticates messages for one designated verifier.

    The verifier's session info must be obtained before a signer can be built.
    """

    def __init__(self, private_key, verifier_name, verifier_info: Optional[SessionInfo]):
        verifier_name = bytes(verifier_name)
        if len(verifier_name) > 255:
            raise MetadataFieldTooLongError()
        info = verifier_info if verifier_info is not None else SessionInfo()
        session = private_key.exchange(info.public_key)
        super().__init__(verifier_name, session)
        self.counter = info.counter
        self.time_zero = time.time() - info.clock_time
        self.epoch = _overlay(bytes(EPOCH_ID_LENGTH), info.epoch)
        # Verifier clock time of the newest session info known to this signer.
        self.set_time = info.clock_time
        self.verifier_public_bytes = bytes(info.public_key)

    def remote_public_key_bytes(self) -> bytes:
        """The verifier's public key as an uncompressed point."""
        return bytes(self.verifier_public_bytes)

    def export_session_info(self) -> bytes:
        """Encode the session state so it can be resumed with import_session_info."""
        return SessionInfo(
            counter=self.counter,
            public_key=self.verifier_public_bytes,
            epoch=bytes(self.epoch),
            clock_time=self.timestamp(),
        ).encode()

    def update_session_info(self, info: SessionInfo) -> None:
        """Resynchronise with the verifier using (unauthenticated) session info."""
        if bytes(info.public_key) != self.verifier_public_bytes:
            raise AuthError(
                MessageFault.UNKNOWN_KEY_ID,
                "public key in SessionInfo doesn't match value used to initialize Signer",
            )
        if bytes(self.epoch) != bytes(info.epoch) or self.set_time <= info.clock_time:
            self.counter = max(self.counter, info.counter)
            self.epoch = _overlay(self.epoch, info.epoch)
            self.set_time = info.clock_time
            self.time_zero = time.time() - info.clock_time

    def update_signed_session_info(self, challenge, encoded_info, tag) -> None:
        """Resynchronise with the verifier using authenticated session info."""
        valid_tag = self.session.session_info_hmac(self.verifier_name, challenge, encoded_info)
        if not hmac.compare_digest(valid_tag, bytes(tag or b"")):
            raise AuthError(MessageFault.INVALID_SIGNATURE, "session info hmac invalid")
        self.update_session_info(_decode_session_info(encoded_info))

    def _expires_at(self, expires_in: Duration) -> int:
        return int(time.time() + _seconds(expires_in) - self.time_zero) & _UINT32_MASK

    def _encrypt_with_counter(self, message: RoutableMessage, expires_in: Duration, counter: int) -> None:
        gcm = GcmPersonalizedData(
            epoch=bytes(self.epoch),
            counter=counter,
            expires_at=self._expires_at(expires_in),
        )
        message.signature_data = SignatureData(
            signer_public_key=self.session.local_public_bytes(), sig_type=gcm
        )
        meta = Metadata()
        self.extract_metadata(meta, message, gcm, SignatureType.AES_GCM_PERSONALIZED)
        plaintext = message.protobuf_message_as_bytes
        if plaintext is None:
            raise AuthError(MessageFault.BAD_PARAMETER, "Missing protobuf message")
        gcm.nonce, ciphertext, gcm.tag = self.session.encrypt(plaintext, meta.checksum(None))
        message.protobuf_message_as_bytes = ciphertext

    def encrypt(self, message: RoutableMessage, expires_in: Duration) -> None:
        """Encrypt the message payload in place, adding authenticated metadata.

        expires_in is a number of seconds or a timedelta.
        """
        if self.counter == COUNTER_MAX:
            raise AuthError(MessageFault.INVALID_TOKEN_OR_COUNTER, "counter rollover")
        self.counter += 1
        self._encrypt_with_counter(message, expires_in, self.counter)

    def authorize_hmac(self, message: RoutableMessage, expires_in: Duration) -> None:
        """Attach an HMAC tag to message without encrypting its payload."""
        self.counter = (self.counter + 1) & _UINT32_MASK
        data = HmacPersonalizedData(
            epoch=bytes(self.epoch),
            counter=self.counter,
            expires_at=self._expires_at(expires_in),
        )
        try:
            data.tag = self.hmac_tag(message, data)
        finally:
            message.signature_data = SignatureData(
                signer_public_key=self.session.local_public_bytes(), sig_type=data
            )

    def decrypt(self, message: RoutableMessage, request_id) -> int:
        """Decrypt a verifier response in place and return its anti-replay counter."""
        sig_data = message.signature_data
        gcm = sig_data.sig_type if sig_data is not None else None
        if not isinstance(gcm, GcmResponseData):
            raise AuthError(MessageFault.BAD_PARAMETER, "missing AES-GCM data")
        try:
            authenticated = self.response_metadata(message, request_id, gcm.counter)
        except MetadataFieldTooLongError:
            return 0
        plaintext = self.session.decrypt(
            gcm.nonce, message.protobuf_message_as_bytes, authenticated, gcm.tag
        )
        message.protobuf_message_as_bytes = plaintext
        message.session_info = None
        message.signature_data = None
        return gcm.counter


def import_session_info(private_key, verifier_name, encoded_info, generated_at: Moment) -> Signer:
    """Create a signer from cached session info generated at the given time."""
    info = _decode_session_info(encoded_info)
    signer = Signer(private_key, verifier_name, info)
    signer.time_zero = _timestamp(generated_at) - info.clock_time
    return signer


def new_authenticated_signer(private_key, verifier_name, challenge, encoded_info, tag) -> Signer:
    """Create a signer from encoded session info whose tag has been checked."""
    signer = import_session_info(private_key, verifier_name, encoded_info, time.time())
    valid_tag = signer.session.session_info_hmac(bytes(verifier_name), challenge, encoded_info)
    if not hmac.compare_digest(valid_tag, bytes(tag or b"")):
        raise AuthError(MessageFault.INVALID_SIGNATURE, "session info hmac invalid")
    return signer


class Dispatcher:
    """Connects to many verifiers with the same private key."""

    def __init__(self, private_key):
        self.private_key = private_key

    def connect(self, verifier_id, session_info: SessionInfo) -> Signer:
        """Create a signer from unauthenticated session info."""
        return Signer(self.private_key, verifier_id, session_info)

    def connect_authenticated(self, verifier_id, challenge, encoded_session_info, tag) -> Signer:
        """Create a signer from authenticated session info."""
        return new_authenticated_signer(
            self.private_key, verifier_id, challenge, encoded_session_info, tag
        )