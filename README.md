# vehicleauth

Authenticated, replay-protected messaging between a **signer**, such as a
phone or a server, and a **verifier**, such as a vehicle. Each party holds a
NIST P-256 key pair. The two parties agree on a session key through ECDH. The
verifier publishes session info, which holds a random 16-byte epoch, a counter
and a clock. The signer uses that session info to encrypt commands with
AES-GCM, or to authenticate them with HMAC-SHA256. The verifier checks the
destination domain, the epoch, the expiration time and the counter. It keeps a
32-message sliding window, so it accepts each counter value only once.

## Installation

```
pip install vehicleauth
```

The only runtime dependency is `cryptography`.

## Quick start

```python
from datetime import timedelta

from vehicleauth.messages import Destination, Domain, RoutableMessage
from vehicleauth.session import new_ecdh_private_key
from vehicleauth.signer import new_authenticated_signer
from vehicleauth.verifier import Verifier

verifier_key = new_ecdh_private_key()
signer_key = new_ecdh_private_key()
domain = Domain.VEHICLE_SECURITY
verifier_id = b"example-verifier-0001"

verifier = Verifier(verifier_key, verifier_id, domain, signer_key.public_bytes())

# The signer asks the verifier for session info, bound to a challenge.
challenge = bytes(range(8))
encoded_info, tag = verifier.signed_session_info(challenge)
signer = new_authenticated_signer(signer_key, verifier_id, challenge, encoded_info, tag)

message = RoutableMessage(
    to_destination=Destination(domain=domain),
    protobuf_message_as_bytes=b"hello world",
)
signer.encrypt(message, timedelta(minutes=1))  # seconds as a number also work
assert verifier.verify(message) == b"hello world"
```

`Signer.authorize_hmac(message, expires_in)` attaches an HMAC tag and leaves
the payload unencrypted. `Verifier.verify` accepts either kind of message and
returns the payload.

## Modules

- `vehicleauth.session`: P-256 keys and the symmetric session derived from them.
  - `ECDHPrivateKey` provides `public_bytes()` and `exchange(remote_public_bytes)`.
  - `new_ecdh_private_key()` generates a random key.
  - `load_external_ecdh_key(filename)` reads a PEM file in SEC 1 or PKCS #8
    form. It raises `InvalidPrivateKeyError` for keys that are not P-256
    elliptic curve keys.
  - `unmarshal_ecdh_private_key(scalar)` builds a key from a 32-byte scalar.
    It returns `None` for a scalar that is invalid.
  - `NativeSession` performs AES-GCM encryption, HMAC subkeys and
    session-info tags.
- `vehicleauth.signer`:
  - `Signer` encrypts, HMAC-authenticates, resynchronises and decrypts
    responses.
  - `new_authenticated_signer` builds a signer from session info whose tag it
    has checked.
  - `import_session_info` rebuilds a signer from bytes written by
    `Signer.export_session_info()`.
  - `Dispatcher` connects one private key to many verifiers, through
    `connect` and `connect_authenticated`.
- `vehicleauth.verifier`: `Verifier` checks commands with `verify`. It
  publishes `session_info()` and `signed_session_info(challenge)`, and
  `set_session_info` attaches signed session info to a message. It encrypts
  responses with `encrypt(message, request_id, counter)`. A verifier created
  with `Domain.BROADCAST` does not check the destination domain.
- `vehicleauth.peer`: `Peer` holds the state and metadata handling that signer
  and verifier share.
- `vehicleauth.messages`: the message types (`RoutableMessage`, `Destination`,
  `SessionInfo`, `SignatureData`, `GcmPersonalizedData`,
  `HmacPersonalizedData`, `GcmResponseData`, `SessionInfoTag`), the `Tag`,
  `SignatureType` and `Domain` enums, and `request_id(message)`.
  `SessionInfo.encode()` and `SessionInfo.decode()` produce and read the
  compact binary form that is exchanged and tagged.
- `vehicleauth.metadata`: `Metadata`, an injective tag/length/value encoding.
  It feeds a hash context. Tags must be added in increasing order, and values
  may be at most 255 bytes long.
- `vehicleauth.window`: `SlidingWindow` and `update_sliding_window`, the
  anti-replay counter window.
- `vehicleauth.errors`:
  - `AuthError` carries a `MessageFault` code. It prints as
    `"<Fault>: <message>"`, for example `"KeychainIsFull: foobar"`.
  - `InvalidSignatureError` also carries `encoded_info` and `tag`.
  - The other errors are `InvalidPublicKeyError`, `InvalidPrivateKeyError` and
    `MetadataFieldTooLongError`.

## Responses

The verifier encrypts a response that answers a request. `request_id(request)`
returns the id of that request. The signer decrypts the response with the same
id:

```python
from vehicleauth.messages import request_id

rid = request_id(request)
verifier.encrypt(response, rid, 1)
counter = signer.decrypt(response, rid)  # 1; the payload is now plaintext
```

## Resynchronising

A new `Verifier` picks a new random epoch. Messages that carry an old epoch,
an expired time or a reused counter fail with `InvalidSignatureError`. The
error holds freshly signed session info (`encoded_info` and `tag`), and the
message's `uuid` is the challenge it is bound to. Pass the challenge, the
encoded info and the tag to `Signer.update_signed_session_info`, then send the
message again.

## What this package does not do

The package does not send or receive messages. It has no Bluetooth or HTTP
transport and no command-line tool. It does not store keys in a keyring.
`vehicleauth.messages` encodes only the message fields that authentication
uses. It is not a full schema for vehicle commands.

## Running the tests

```
pip install -e ".[test]"
pytest
```