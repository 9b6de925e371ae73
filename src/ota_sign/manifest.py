"""Payload manifest encoding."""

import struct
from dataclasses import dataclass, replace

from .errors import PayloadFormatError


# Manifest magic number
MANIFEST_MAGIC = b"OMAN"
MANIFEST_VERSION = 1

_MANIFEST_FORMAT = ">4sIIIQQ32sQQ"
MANIFEST_SIZE = struct.calcsize(_MANIFEST_FORMAT)


@dataclass(frozen=True)
class PayloadManifest:
    """Manifest describing the data section of a payload.

    The manifest records where the payload signature blob lives. Its size is
    part of the metadata, so it has to be fixed before the first metadata hash
    is taken.
    """

    block_size: int
    minor_version: int
    max_timestamp: int

    # Data section
    data_size: int
    data_hash: bytes  # SHA-256

    # Payload signature blob, offset relative to the start of the data section
    signatures_offset: int = 0
    signatures_size: int = 0

    def with_signatures(self, offset: int, size: int) -> "PayloadManifest":
        """Get a copy that records a payload signature blob."""
        return replace(self, signatures_offset=offset, signatures_size=size)

    def to_bytes(self) -> bytes:
        """Serialize manifest to bytes.

        Format (big-endian):
        [4 bytes] Magic "OMAN"
        [4 bytes] Manifest version
        [4 bytes] Block size
        [4 bytes] Minor payload version
        [8 bytes] Max timestamp
        [8 bytes] Data size
        [32 bytes] Data hash (SHA-256)
        [8 bytes] Signatures offset
        [8 bytes] Signatures size
        """
        return struct.pack(
            _MANIFEST_FORMAT,
            MANIFEST_MAGIC,
            MANIFEST_VERSION,
            self.block_size,
            self.minor_version,
            self.max_timestamp,
            self.data_size,
            self.data_hash,
            self.signatures_offset,
            self.signatures_size,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "PayloadManifest":
        """Deserialize manifest from bytes."""
        if len(data) != MANIFEST_SIZE:
            raise PayloadFormatError(
                f"Manifest is {len(data)} bytes, expected {MANIFEST_SIZE}"
            )

        (
            magic,
            version,
            block_size,
            minor_version,
            max_timestamp,
            data_size,
            data_hash,
            signatures_offset,
            signatures_size,
        ) = struct.unpack(_MANIFEST_FORMAT, data)

        if magic != MANIFEST_MAGIC:
            raise PayloadFormatError(f"Invalid manifest magic: {magic}")

        if version != MANIFEST_VERSION:
            raise PayloadFormatError(f"Unsupported manifest version: {version}")

        return cls(
            block_size=block_size,
            minor_version=minor_version,
            max_timestamp=max_timestamp,
            data_size=data_size,
            data_hash=data_hash,
            signatures_offset=signatures_offset,
            signatures_size=signatures_size,
        )
