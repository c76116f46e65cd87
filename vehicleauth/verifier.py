"""Verification of commands sent by a signer, and encryption of responses."""

from __future__ import annotations

import hmac
import os
import threading
import time
from typing import Optional

from vehicleauth.errors import (
    AuthError,
    InvalidSignatureError,
    MessageFault,
    MetadataFieldTooLongError,
)
from vehicleauth.messages import (
    Domain,
    GcmPersonalizedData,
    GcmResponseData,
    HmacPersonalizedData,
    RoutableMessage,
    SessionInfo,
    SessionInfoTag,
    SignatureData,
    SignatureType,
)
from vehicleauth.metadata import Metadata
from vehicleauth.peer import (
    COUNTER_MAX,
    EPOCH_ID_LENGTH,
    MAX_SECONDS_WITHOUT_COUNTER,
    Peer,
)
from vehicleauth.window import update_sliding_window

_YEAR_IN_SECONDS = 365 * 24 * 60 * 60


class Verifier(Peer):
    """Checks the authenticity of commands sent by a signer.

    A domain of Domain.BROADCAST disables domain checking; otherwise the
    signer must know the verifier's domain in advance.
    """

    def __init__(self, private_key, verifier_id, domain, signer_public_bytes):
        session = private_key.exchange(signer_public_bytes)
        super().__init__(bytes(verifier_id), session, domain)
        self._lock = threading.Lock()
        self.window = 0
        self.handle = 0
        if len(self.verifier_name) > 255:
            raise MetadataFieldTooLongError()
        self._rotate_epoch_if_needed(False)

    def _rotate_epoch_if_needed(self, force: bool) -> None:
        if (
            force
            or self.time_zero is None
            or self.counter == COUNTER_MAX
            or self.timestamp() > self.epoch_length
        ):
            self.epoch = os.urandom(EPOCH_ID_LENGTH)
            self.time_zero = time.time()
            self.counter = 0

    def _adjust_clock(self) -> None:
        # A start time in the future or more than a year back cannot be trusted.
        if self.time_zero is not None:
            now = int(time.time())
            start = int(self.time_zero)
            if start > now or now - start > _YEAR_IN_SECONDS:
                self._rotate_epoch_if_needed(True)
                return
        self._rotate_epoch_if_needed(False)

    def assign_handle(self, handle: int) -> None:
        """Set the handle reported in session info."""
        with self._lock:
            self.handle = handle

    def _session_info(self) -> SessionInfo:
        self._adjust_clock()
        return SessionInfo(
            counter=self.counter,
            public_key=self.session.local_public_bytes(),
            epoch=bytes(self.epoch),
            clock_time=self.timestamp(),
            handle=self.handle,
        )

    def session_info(self) -> SessionInfo:
        """Metadata a signer needs to produce acceptable messages."""
        with self._lock:
            return self._session_info()

    def _signed_session_info(self, challenge):
        encoded = self._session_info().encode()
        tag = self.session.session_info_hmac(self.verifier_name, challenge, encoded)
        return encoded, tag

    def signed_session_info(self, challenge):
        """Encoded session info and an HMAC tag binding it to challenge."""
        with self._lock:
            return self._signed_session_info(challenge)

    def set_session_info(self, challenge, message: RoutableMessage) -> None:
        """Attach fresh signed session info to message."""
        encoded, tag = self.signed_session_info(challenge)
        message.session_info = encoded
        message.protobuf_message_as_bytes = None
        message.signature_data = SignatureData(sig_type=SessionInfoTag(tag=tag))

    def _signature_error(self, code, challenge) -> AuthError:
        try:
            encoded, tag = self._signed_session_info(challenge)
        except (AuthError, ValueError):
            return AuthError(
                MessageFault.INTERNAL,
                f"Error collecting session info after encountering {MessageFault(code).proto_name}",
            )
        return InvalidSignatureError(code, encoded, tag)

    def verify(self, message: RoutableMessage) -> bytes:
        """Authenticate message and return its payload, decrypted if needed."""
        with self._lock:
            self._adjust_clock()
            if message.signature_data is None:
                raise AuthError(MessageFault.BAD_PARAMETER, "signature data missing")
            sig = message.signature_data.sig_type
            if isinstance(sig, GcmPersonalizedData):
                plaintext = self._verify_gcm(message, sig)
            elif isinstance(sig, HmacPersonalizedData):
                plaintext = self._verify_hmac(message, sig)
            else:
                raise AuthError(MessageFault.BAD_PARAMETER, "unrecognized authentication method")

            if sig.counter > 0:
                counter, window, ok = update_sliding_window(self.counter, self.window, sig.counter)
                if not ok:
                    raise self._signature_error(
                        MessageFault.INVALID_TOKEN_OR_COUNTER, message.uuid or None
                    )
                self.counter, self.window = counter, window
            return plaintext

    def _verify_gcm(self, message: RoutableMessage, gcm: GcmPersonalizedData) -> bytes:
        self._verify_session_info(message, gcm)
        meta = Metadata()
        self.extract_metadata(meta, message, gcm, SignatureType.AES_GCM_PERSONALIZED)
        try:
            return self.session.decrypt(
                gcm.nonce, message.protobuf_message_as_bytes, meta.checksum(None), gcm.tag
            )
        except AuthError:
            raise self._signature_error(
                MessageFault.INVALID_SIGNATURE, message.uuid or None
            ) from None

    def _verify_hmac(self, message: RoutableMessage, data: HmacPersonalizedData) -> bytes:
        self._verify_session_info(message, data)
        expected = self.hmac_tag(message, data)
        if not hmac.compare_digest(bytes(data.tag), expected):
            raise self._signature_error(MessageFault.INVALID_SIGNATURE, message.uuid or None)
        return message.protobuf_message_as_bytes

    def _verify_session_info(self, message: RoutableMessage, info) -> None:
        if message.to_domain != self.domain and self.domain != Domain.BROADCAST:
            raise AuthError(MessageFault.INVALID_DOMAINS, "wrong domain")

        challenge: Optional[bytes] = message.uuid or None
        if info.epoch is not None and bytes(info.epoch) != bytes(self.epoch):
            raise self._signature_error(MessageFault.INCORRECT_EPOCH, challenge)

        expires_at = info.expires_at
        now = self.timestamp()
        if expires_at != 0 and expires_at < now:
            raise self._signature_error(MessageFault.TIME_EXPIRED, challenge)

        if expires_at > self.epoch_length:
            raise self._signature_error(MessageFault.BAD_PARAMETER, challenge)

        # A zero counter skips replay checks, so such messages must expire soon.
        counter = info.counter
        if counter == 0 or counter < self.counter:
            if expires_at == 0 or expires_at - now > MAX_SECONDS_WITHOUT_COUNTER:
                raise self._signature_error(MessageFault.TIME_TO_LIVE_TOO_LONG, challenge)

    def encrypt(self, message: RoutableMessage, request_id, counter: int) -> None:
        """Encrypt a response to the request identified by request_id in place."""
        plaintext = message.protobuf_message_as_bytes
        associated = self.response_metadata(message, request_id, counter)
        nonce, ciphertext, tag = self.session.encrypt(plaintext, associated)
        message.signature_data = SignatureData(
            sig_type=GcmResponseData(nonce=nonce, counter=counter, tag=tag)
        )
        message.protobuf_message_as_bytes = ciphertext
        message.session_info = None