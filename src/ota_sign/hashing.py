"""SHA-256 digests over payload bytes.

The payload and metadata hashes are computed with every reserved signature
region replaced by zero bytes. A container therefore hashes the same whether
its regions hold placeholders or real signature blobs of the same length.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from Crypto.Hash import SHA256

from .errors import InvalidArgumentError, PayloadIOError


DIGEST_SIZE = 32

# Read size used when hashing files
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ReservedRegion:
    """A byte range reserved for a signature blob."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class PayloadHashSet:
    """Hashes signed by the payload and metadata signatures."""

    payload_hash: bytes
    metadata_hash: bytes


def raw_hash_of_bytes(data: bytes) -> bytes:
    """Get the SHA-256 digest of a byte string."""
    return SHA256.new(data).digest()


def raw_hash_of_file(path: Path, length: int = -1) -> bytes:
    """Get the SHA-256 digest of a file.

    Args:
        path: File to hash
        length: Number of leading bytes to hash, or -1 for the whole file

    Returns:
        32-byte digest

    Raises:
        PayloadIOError: If the file cannot be read
    """
    h = SHA256.new()
    remaining = length
    try:
        with open(path, "rb") as f:
            while remaining != 0:
                size = _CHUNK_SIZE if remaining < 0 else min(_CHUNK_SIZE, remaining)
                chunk = f.read(size)
                if not chunk:
                    break
                h.update(chunk)
                if remaining > 0:
                    remaining -= len(chunk)
    except OSError as e:
        raise PayloadIOError(f"Cannot read {path}: {e}") from e

    if remaining > 0:
        raise PayloadIOError(f"{path} is {remaining} bytes shorter than expected")
    return h.digest()


def _hash_with_placeholders(
    data: bytes,
    end: int,
    regions: Sequence[ReservedRegion],
) -> bytes:
    h = SHA256.new()
    position = 0
    for region in regions:
        if region.offset >= end:
            break
        h.update(data[position:region.offset])
        h.update(b"\x00" * (min(region.end, end) - region.offset))
        position = region.end
    if position < end:
        h.update(data[position:end])
    return h.digest()


def _sorted_regions(
    regions: Iterable[ReservedRegion], size: int
) -> list[ReservedRegion]:
    ordered = sorted((r for r in regions if r.length > 0), key=lambda r: r.offset)
    previous_end = 0
    for region in ordered:
        if region.offset < previous_end:
            raise InvalidArgumentError(
                f"Overlapping reserved regions at offset {region.offset}"
            )
        if region.end > size:
            raise InvalidArgumentError(
                f"Reserved region [{region.offset}, {region.end}) "
                f"exceeds container size {size}"
            )
        previous_end = region.end
    return ordered


def hash_container(
    data: bytes,
    metadata_size: int,
    regions: Iterable[ReservedRegion],
) -> PayloadHashSet:
    """Hash a payload container for signing.

    Args:
        data: Complete container bytes
        metadata_size: Size of the header and manifest
        regions: Reserved signature regions to hash as zero placeholders

    Returns:
        PayloadHashSet with the payload hash over the whole container and the
        metadata hash over its first metadata_size bytes
    """
    if not 0 < metadata_size <= len(data):
        raise InvalidArgumentError(
            f"Metadata size {metadata_size} outside container of {len(data)} bytes"
        )
    ordered = _sorted_regions(regions, len(data))
    return PayloadHashSet(
        payload_hash=_hash_with_placeholders(data, len(data), ordered),
        metadata_hash=_hash_with_placeholders(data, metadata_size, ordered),
    )
