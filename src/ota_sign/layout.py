"""Payload container header and layout.

Container format (big-endian)::

    [24 bytes]  Header: magic "CrAU", major version (u64),
                manifest size (u64), metadata signature size (u32)
    [N bytes]   Manifest
    [M bytes]   Metadata signature blob
    [D bytes]   Data blobs
    [S bytes]   Payload signature blob

The metadata is the header plus the manifest. Both signature regions are
reserved before signing; their sizes are recorded inside the metadata.
"""

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .errors import PayloadFormatError, PayloadIOError
from .hashing import ReservedRegion
from .manifest import PayloadManifest


PAYLOAD_MAGIC = b"CrAU"

_HEADER_FORMAT = ">4sQQI"
HEADER_SIZE = struct.calcsize(_HEADER_FORMAT)


@dataclass(frozen=True)
class PayloadHeader:
    """Fixed-size payload header."""

    major_version: int
    manifest_size: int
    metadata_signature_size: int = 0

    def to_bytes(self) -> bytes:
        return struct.pack(
            _HEADER_FORMAT,
            PAYLOAD_MAGIC,
            self.major_version,
            self.manifest_size,
            self.metadata_signature_size,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "PayloadHeader":
        if len(data) < HEADER_SIZE:
            raise PayloadFormatError("Data too short for header")

        magic, major_version, manifest_size, metadata_signature_size = struct.unpack(
            _HEADER_FORMAT, data[:HEADER_SIZE]
        )

        if magic != PAYLOAD_MAGIC:
            raise PayloadFormatError(f"Invalid magic: {magic}")

        return cls(
            major_version=major_version,
            manifest_size=manifest_size,
            metadata_signature_size=metadata_signature_size,
        )


@dataclass(frozen=True)
class PayloadLayout:
    """Byte ranges of a parsed payload container."""

    header: PayloadHeader
    manifest: PayloadManifest

    @property
    def metadata_size(self) -> int:
        return HEADER_SIZE + self.header.manifest_size

    @property
    def data_offset(self) -> int:
        return self.metadata_size + self.header.metadata_signature_size

    @property
    def total_size(self) -> int:
        return self.data_offset + self.manifest.data_size + self.manifest.signatures_size

    @property
    def metadata_signature_region(self) -> ReservedRegion:
        return ReservedRegion(self.metadata_size, self.header.metadata_signature_size)

    @property
    def payload_signature_region(self) -> ReservedRegion:
        return ReservedRegion(
            self.data_offset + self.manifest.signatures_offset,
            self.manifest.signatures_size,
        )

    def reserved_regions(self) -> tuple[ReservedRegion, ...]:
        """Get the non-empty signature regions."""
        return tuple(
            region
            for region in (self.metadata_signature_region, self.payload_signature_region)
            if region.length
        )

    def is_signed(self) -> bool:
        """Check whether both signature regions are reserved."""
        return bool(
            self.header.metadata_signature_size and self.manifest.signatures_size
        )


def parse_payload(data: bytes) -> PayloadLayout:
    """Parse and validate the layout of a payload container.

    Raises:
        PayloadFormatError: If the header or manifest is unreadable or the
            recorded sizes do not match the container
    """
    header = PayloadHeader.from_bytes(data)
    metadata_size = HEADER_SIZE + header.manifest_size
    if len(data) < metadata_size:
        raise PayloadFormatError(
            f"Data truncated: metadata needs {metadata_size} bytes, got {len(data)}"
        )

    manifest = PayloadManifest.from_bytes(data[HEADER_SIZE:metadata_size])
    layout = PayloadLayout(header=header, manifest=manifest)

    if manifest.signatures_size and manifest.signatures_offset != manifest.data_size:
        raise PayloadFormatError(
            f"Payload signature at {manifest.signatures_offset} does not follow "
            f"{manifest.data_size} bytes of data"
        )

    if len(data) != layout.total_size:
        raise PayloadFormatError(
            f"Payload is {len(data)} bytes, layout needs {layout.total_size}"
        )

    return layout


def read_payload(path: Union[str, Path]) -> bytes:
    """Read a whole payload file.

    Raises:
        PayloadIOError: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise PayloadIOError(f"Cannot read payload {path}: {e}") from e
