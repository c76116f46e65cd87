"""ECDH key agreement and the symmetric session derived from it."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vehicleauth.errors import (
    AuthError,
    InvalidPrivateKeyError,
    InvalidPublicKeyError,
    MessageFault,
)
from vehicleauth.messages import SignatureType, Tag
from vehicleauth.metadata import Metadata

SHARED_KEY_SIZE_BYTES = 16
LABEL_SESSION_INFO = "session info"

_NONCE_SIZE = 12
_TAG_SIZE = 16
_P256_ORDER = int(
    "ffffffff00000000ffffffffffffffffbce6faada7179e84f3b9cac2fc632551", 16
)
_POINT_LENGTH = 65
_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----\r?\n(.*?)-----END \1-----", re.DOTALL
)


class NativeSession:
    """Encrypts, decrypts and authenticates data with a key shared through ECDH."""

    def __init__(self, key: bytes, local_public: bytes):
        self.key = bytes(key)
        self._local_public = bytes(local_public)
        self._gcm = AESGCM(self.key)

    def local_public_bytes(self) -> bytes:
        """The encoded public key of the local side."""
        return self._local_public

    def encrypt(self, plaintext: Optional[bytes], associated_data: Optional[bytes]):
        """Encrypt plaintext; returns (nonce, ciphertext, tag)."""
        nonce = os.urandom(_NONCE_SIZE)
        sealed = self._gcm.encrypt(nonce, bytes(plaintext or b""), associated_data)
        return nonce, sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]

    def decrypt(self, nonce, ciphertext, associated_data, tag) -> bytes:
        """Authenticate ciphertext and associated data with tag, then decrypt."""
        nonce = bytes(nonce or b"")
        if len(nonce) != _NONCE_SIZE:
            raise AuthError(MessageFault.IV_INCORRECT_LENGTH, "incorrect nonce length")
        sealed = bytes(ciphertext or b"") + bytes(tag or b"")
        try:
            return self._gcm.decrypt(nonce, sealed, associated_data)
        except InvalidTag:
            raise AuthError(
                MessageFault.INVALID_SIGNATURE, "message authentication failed"
            ) from None

    def _subkey(self, label: bytes) -> bytes:
        return hmac.new(self.key, label, hashlib.sha256).digest()

    def new_hmac(self, label: str):
        """An HMAC-SHA256 context keyed by a label-specific subkey."""
        return hmac.new(self._subkey(label.encode()), digestmod=hashlib.sha256)

    def session_info_hmac(self, verifier_id, challenge, encoded_info) -> bytes:
        """Tag authenticating encoded session info against a challenge."""
        meta = Metadata(self.new_hmac(LABEL_SESSION_INFO))
        meta.add(Tag.SIGNATURE_TYPE, bytes([SignatureType.HMAC]))
        meta.add(Tag.PERSONALIZATION, verifier_id)
        meta.add(Tag.CHALLENGE, challenge)
        return meta.checksum(encoded_info)


class ECDHPrivateKey:
    """A local NIST P-256 private key.

    A private_key of None stands for the zero scalar, which has no usable
    public point; exchanging with it fails.
    """

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey]):
        self._key = private_key

    def public_bytes(self) -> bytes:
        """The public key as an uncompressed curve point."""
        if self._key is None:
            return b"\x04" + bytes(_POINT_LENGTH - 1)
        return self._key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )

    def _shared_secret(self, remote_public_bytes) -> bytes:
        data = bytes(remote_public_bytes or b"")
        if len(data) != _POINT_LENGTH or data[0] != 0x04:
            raise InvalidPublicKeyError()
        try:
            remote = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)
        except ValueError:
            raise InvalidPublicKeyError() from None
        if self._key is None:
            raise InvalidPrivateKeyError()
        return self._key.exchange(ec.ECDH(), remote)

    def exchange(self, remote_public_bytes) -> NativeSession:
        """Agree on a session key with the holder of remote_public_bytes."""
        secret = self._shared_secret(remote_public_bytes)
        # SHA-1 keeps compatibility with vehicles; it only maps a random point to bits.
        key = hashlib.sha1(secret).digest()[:SHARED_KEY_SIZE_BYTES]
        return NativeSession(key, self.public_bytes())


def new_ecdh_private_key() -> ECDHPrivateKey:
    """Generate a fresh random P-256 key."""
    return ECDHPrivateKey(ec.generate_private_key(ec.SECP256R1()))


def _decode_pem(data: bytes):
    match = _PEM_BLOCK.search(data)
    if match is None:
        return None
    body = b"".join(
        line.strip() for line in match.group(2).splitlines() if b":" not in line
    )
    try:
        der = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError):
        return None
    return match.group(1).decode("ascii", "replace"), der


def load_external_ecdh_key(filename) -> ECDHPrivateKey:
    """Load a PEM-encoded P-256 private key in SEC 1 or PKCS #8 form."""
    block = _decode_pem(Path(filename).read_bytes())
    if block is None:
        raise InvalidPrivateKeyError("expected PEM encoding")
    _, der = block
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise InvalidPrivateKeyError(str(exc)) from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise InvalidPrivateKeyError("only elliptic curve keys supported")
    if not isinstance(key.curve, ec.SECP256R1):
        raise InvalidPrivateKeyError("only NIST-P256 keys supported")
    return ECDHPrivateKey(key)


def unmarshal_ecdh_private_key(private_scalar) -> Optional[ECDHPrivateKey]:
    """Build a key from a 32-byte big-endian scalar, or None if it is invalid."""
    if private_scalar is None or len(private_scalar) != 32:
        return None
    scalar = int.from_bytes(bytes(private_scalar), "big")
    if scalar >= _P256_ORDER:
        return None
    if scalar == 0:
        return ECDHPrivateKey(None)
    return ECDHPrivateKey(ec.derive_private_key(scalar, ec.SECP256R1()))