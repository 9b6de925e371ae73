"""Signature blob encoding.

A signature blob is the protobuf wire encoding of::

    message Signatures {
      message Signature {
        optional uint32 version = 1;
        optional bytes data = 2;
      }
      repeated Signature signatures = 1;
    }

which is what the on-device verifier parses. Encoding is hand-written so the
serialized length can be computed from signature sizes alone, before any key
has signed anything.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import MalformedBlobError


SIGNATURE_VERSION = 1

# Protobuf wire types
_VARINT = 0
_FIXED64 = 1
_LENGTH_DELIMITED = 2
_FIXED32 = 5

# Field numbers
_SIGNATURES_FIELD = 1
_VERSION_FIELD = 1
_DATA_FIELD = 2


@dataclass(frozen=True)
class SignatureEntry:
    """One signature produced by one key."""

    data: bytes
    version: int = SIGNATURE_VERSION


def _tag(field: int, wire_type: int) -> bytes:
    return _encode_varint((field << 3) | wire_type)


def _encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _varint_size(value: int) -> int:
    size = 1
    while value >= 0x80:
        value >>= 7
        size += 1
    return size


def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise MalformedBlobError("Truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise MalformedBlobError("Varint too long")


def _entry_body_size(signature_size: int, version: int = SIGNATURE_VERSION) -> int:
    return (
        1 + _varint_size(version)
        + 1 + _varint_size(signature_size) + signature_size
    )


def encoded_length(signature_sizes: Iterable[int]) -> int:
    """Get the blob length for signatures of the given sizes.

    Args:
        signature_sizes: Size of each signature, in key order

    Returns:
        Exact length of the encoded blob
    """
    total = 0
    for size in signature_sizes:
        body = _entry_body_size(size)
        total += 1 + _varint_size(body) + body
    return total


def _encode_entry(entry: SignatureEntry) -> bytes:
    body = (
        _tag(_VERSION_FIELD, _VARINT)
        + _encode_varint(entry.version)
        + _tag(_DATA_FIELD, _LENGTH_DELIMITED)
        + _encode_varint(len(entry.data))
        + entry.data
    )
    return _tag(_SIGNATURES_FIELD, _LENGTH_DELIMITED) + _encode_varint(len(body)) + body


def encode_blob(entries: Sequence[SignatureEntry]) -> bytes:
    """Serialize signature entries, preserving their order."""
    return b"".join(_encode_entry(entry) for entry in entries)


def _iter_fields(data: bytes):
    pos = 0
    while pos < len(data):
        key, pos = _decode_varint(data, pos)
        field, wire_type = key >> 3, key & 0x07
        if field == 0:
            raise MalformedBlobError("Invalid field number 0")

        if wire_type == _VARINT:
            value, pos = _decode_varint(data, pos)
        elif wire_type == _LENGTH_DELIMITED:
            length, pos = _decode_varint(data, pos)
            if pos + length > len(data):
                raise MalformedBlobError(
                    f"Field {field} needs {length} bytes, {len(data) - pos} left"
                )
            value = data[pos:pos + length]
            pos += length
        elif wire_type in (_FIXED64, _FIXED32):
            width = 8 if wire_type == _FIXED64 else 4
            if pos + width > len(data):
                raise MalformedBlobError(f"Truncated fixed-width field {field}")
            value = data[pos:pos + width]
            pos += width
        else:
            raise MalformedBlobError(f"Unsupported wire type {wire_type}")

        yield field, wire_type, value


def _decode_entry(data: bytes) -> SignatureEntry:
    version = 0
    signature = b""
    for field, wire_type, value in _iter_fields(data):
        if field == _VERSION_FIELD and wire_type == _VARINT:
            version = value
        elif field == _DATA_FIELD and wire_type == _LENGTH_DELIMITED:
            signature = value
    return SignatureEntry(data=signature, version=version)


def decode_blob(data: bytes) -> tuple[SignatureEntry, ...]:
    """Parse a signature blob.

    Unknown fields are skipped, as a protobuf parser would.

    Raises:
        MalformedBlobError: If the bytes are not a valid encoding
    """
    entries = []
    for field, wire_type, value in _iter_fields(bytes(data)):
        if field == _SIGNATURES_FIELD:
            if wire_type != _LENGTH_DELIMITED:
                raise MalformedBlobError("Signature entry is not length-delimited")
            entries.append(_decode_entry(value))
    return tuple(entries)
