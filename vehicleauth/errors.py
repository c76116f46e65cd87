"""Exceptions raised while authenticating vehicle messages."""

from __future__ import annotations

import enum


class MessageFault(enum.IntEnum):
    """Fault codes a verifier reports about a signed message."""

    NONE = 0
    BUSY = 1
    TIMEOUT = 2
    UNKNOWN_KEY_ID = 3
    INACTIVE_KEY = 4
    INVALID_SIGNATURE = 5
    INVALID_TOKEN_OR_COUNTER = 6
    INSUFFICIENT_PRIVILEGES = 7
    INVALID_DOMAINS = 8
    INVALID_COMMAND = 9
    DECODING = 10
    INTERNAL = 11
    WRONG_PERSONALIZATION = 12
    BAD_PARAMETER = 13
    KEYCHAIN_IS_FULL = 14
    INCORRECT_EPOCH = 15
    IV_INCORRECT_LENGTH = 16
    TIME_EXPIRED = 17
    NOT_PROVISIONED_WITH_IDENTITY = 18
    COULD_NOT_HASH_METADATA = 19
    TIME_TO_LIVE_TOO_LONG = 20
    REMOTE_ACCESS_DISABLED = 21
    REMOTE_SERVICE_ACCESS_DISABLED = 22
    COMMAND_REQUIRES_ACCOUNT_CREDENTIALS = 23

    @property
    def description(self) -> str:
        """Short human-readable name of the fault."""
        return _DESCRIPTIONS.get(self, "UnknownError")

    @property
    def proto_name(self) -> str:
        """Name of the fault as it appears in the wire schema."""
        return f"MESSAGEFAULT_ERROR_{self.name}"


_DESCRIPTIONS = {
    MessageFault.NONE: "OK",
    MessageFault.BUSY: "Busy",
    MessageFault.TIMEOUT: "Timeout",
    MessageFault.UNKNOWN_KEY_ID: "UnknownKeyID",
    MessageFault.INACTIVE_KEY: "InactiveKey",
    MessageFault.INVALID_SIGNATURE: "InvalidSignature",
    MessageFault.INVALID_TOKEN_OR_COUNTER: "InvalidTokenOrCounter",
    MessageFault.INSUFFICIENT_PRIVILEGES: "InsufficientPrivileges",
    MessageFault.INVALID_DOMAINS: "InvalidDomains",
    MessageFault.INVALID_COMMAND: "InvalidCommand",
    MessageFault.DECODING: "DecodingError",
    MessageFault.INTERNAL: "InternalError",
    MessageFault.WRONG_PERSONALIZATION: "WrongPersonalization",
    MessageFault.BAD_PARAMETER: "BadParameter",
    MessageFault.KEYCHAIN_IS_FULL: "KeychainIsFull",
    MessageFault.INCORRECT_EPOCH: "IncorrectEpoch",
    MessageFault.IV_INCORRECT_LENGTH: "IVIncorrectLength",
    MessageFault.TIME_EXPIRED: "TimeExpired",
    MessageFault.NOT_PROVISIONED_WITH_IDENTITY: "NotProvisionedWithIdentity",
    MessageFault.COULD_NOT_HASH_METADATA: "CouldNotHashMetadata",
    MessageFault.TIME_TO_LIVE_TOO_LONG: "TimeToLiveTooLong",
    MessageFault.REMOTE_ACCESS_DISABLED: "RemoteAccessDisabled",
    MessageFault.REMOTE_SERVICE_ACCESS_DISABLED: "RemoteServiceAccessDisabled",
    MessageFault.COMMAND_REQUIRES_ACCOUNT_CREDENTIALS: "CommandRequiresAccountCredentials",
}


class AuthError(Exception):
    """An authentication failure carrying a message fault code."""

    def __init__(self, code, message):
        super().__init__(code, message)
        self.code = MessageFault(code)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.description}: {self.message}"


class InvalidSignatureError(AuthError):
    """A signature check failed; carries fresh session info for resynchronisation."""

    def __init__(self, code, encoded_info, tag):
        super().__init__(code, "invalid signature")
        self.encoded_info = encoded_info
        self.tag = tag

    def __str__(self) -> str:
        return f"Invalid signature: {self.code.proto_name}"


class InvalidPublicKeyError(AuthError):
    """A remote peer supplied a malformed public key."""

    def __init__(self, message="invalid public key"):
        super().__init__(MessageFault.BAD_PARAMETER, message)


class InvalidPrivateKeyError(ValueError):
    """A local private key is malformed or of an unsupported kind."""

    def __init__(self, detail=None):
        text = "invalid private key" if detail is None else f"invalid private key: {detail}"
        super().__init__(text)
        self.detail = detail


class MetadataFieldTooLongError(ValueError):
    """An authenticated metadata field exceeds 255 bytes."""

    def __init__(self, message="metadata fields can't be more than 255 bytes long"):
        super().__init__(message)