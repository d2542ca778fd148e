"""Identifier codec — textual UUIDs to time-ordered 16-byte keys.

Storage form reorders the time fields of the canonical text so the most
significant time bits come first (the MySQL ``UUID_TO_BIN(x, 1)`` layout):

    text:    tttttttt-mmmm-hhhh-cccc-nnnnnnnnnnnn
    binary:  hhhh mmmm tttttttt cccc nnnnnnnnnnnn

Time-based identifiers generated close together then sort close together,
which keeps B-tree inserts local. Every table keyed by an identifier stores
this form, so all service instances must agree on it byte for byte.

Text is case-insensitive on the way in and always lowercase on the way
out, so ``decode(encode(x)) == canonical(x)`` for every valid ``x``.
"""

from __future__ import annotations

import re
import uuid
from typing import TypeAlias

from schemaledger.exceptions import InvalidLength, MalformedIdentifier

Identifier: TypeAlias = str

_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def new_id() -> Identifier:
    """Fresh time-based identifier in canonical text form."""
    return str(uuid.uuid1())


def is_valid(text: object) -> bool:
    return isinstance(text, str) and _PATTERN.fullmatch(text) is not None


def canonical(text: Identifier | uuid.UUID) -> Identifier:
    """Validated lowercase text form."""
    if isinstance(text, uuid.UUID):
        return str(text)
    if not is_valid(text):
        raise MalformedIdentifier(text)
    return text.lower()


def encode(text: Identifier | uuid.UUID) -> bytes:
    """Text (any case) -> 16-byte storage form."""
    raw = bytes.fromhex(canonical(text).replace("-", ""))
    return raw[6:8] + raw[4:6] + raw[0:4] + raw[8:16]


def decode(data: bytes | bytearray | memoryview) -> Identifier:
    """16-byte storage form -> canonical lowercase text."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise InvalidLength(None)
    raw = bytes(data)
    if len(raw) != 16:
        raise InvalidLength(len(raw))
    return str(uuid.UUID(bytes=raw[4:8] + raw[2:4] + raw[0:2] + raw[8:16]))
