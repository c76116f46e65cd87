"""Injective serialisation of authenticated metadata into a hash context."""

from __future__ import annotations

import hashlib
import struct
from typing import Iterable, Optional

from vehicleauth.errors import MetadataFieldTooLongError
from vehicleauth.messages import Tag

_OUT_OF_ORDER = "metadata items need to be added in increasing tag order"


class Metadata:
    """Accumulates (tag, value) pairs into a hash; tags must not decrease."""

    def __init__(self, context=None):
        self.context = context if context is not None else hashlib.sha256()
        self._fields: set[int] = set()
        self._last = 0

    def add(self, tag, value: Optional[bytes]) -> None:
        """Add a field; a value of None is skipped."""
        if tag < self._last:
            raise ValueError(_OUT_OF_ORDER)
        if value is None:
            return
        if len(value) > 255:
            raise MetadataFieldTooLongError()
        self._last = int(tag)
        self.context.update(bytes([int(tag), len(value)]))
        self.context.update(bytes(value))
        self._fields.add(int(tag))

    def add_uint32(self, tag, value: int) -> None:
        """Add a field holding a big-endian 32-bit integer."""
        self.add(tag, struct.pack(">I", value & 0xFFFFFFFF))

    def contains(self, tags: Iterable) -> bool:
        """True if every tag given has been added."""
        return all(int(tag) in self._fields for tag in tags)

    def checksum(self, message: Optional[bytes]) -> bytes:
        """Terminate the metadata, append message and return the digest."""
        self.context.update(bytes([Tag.END]))
        if message:
            self.context.update(bytes(message))
        return self.context.digest()