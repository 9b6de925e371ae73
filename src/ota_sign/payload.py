"""Payload file writing for OTA updates."""

import base64
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Union

from . import signer
from .blob import SignatureEntry, encode_blob
from .config import PayloadGenerationConfig
from .errors import InvalidArgumentError, PayloadFormatError, PayloadIOError
from .hashing import ReservedRegion, hash_container, raw_hash_of_bytes, raw_hash_of_file
from .keys import KeyPath
from .layout import PayloadHeader, parse_payload, read_payload
from .manifest import PayloadManifest


logger = logging.getLogger("ota_sign.payload")

PathLike = Union[str, Path]


def _write_atomically(path: PathLike, data: bytes) -> None:
    """Replace a file so readers never see a partial write.

    Raises:
        PayloadIOError: If the file cannot be written
    """
    path = Path(path)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    except OSError as e:
        raise PayloadIOError(f"Cannot create {path}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException as e:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        if isinstance(e, OSError):
            raise PayloadIOError(f"Cannot write {path}: {e}") from e
        raise


def _splice(container: bytearray, region: ReservedRegion, blob: bytes) -> None:
    if len(blob) != region.length:
        raise PayloadFormatError(
            f"Signature blob is {len(blob)} bytes, region at {region.offset} "
            f"holds {region.length}"
        )
    container[region.offset:region.end] = blob


class PayloadFile:
    """Writes payload containers with reserved or real signatures."""

    def __init__(self) -> None:
        """Initialize an unconfigured writer."""
        self._config: Optional[PayloadGenerationConfig] = None

    def init(self, config: PayloadGenerationConfig) -> None:
        """Set the version and format parameters for later writes.

        Args:
            config: Payload generation configuration
        """
        self._config = config

    @property
    def config(self) -> PayloadGenerationConfig:
        if self._config is None:
            raise RuntimeError("PayloadFile.init() must be called before writing")
        return self._config

    def build_container(
        self,
        data: bytes,
        signature_blob_length: int = 0,
    ) -> bytearray:
        """Build a container with zero-filled signature regions.

        Args:
            data: Data blobs to embed
            signature_blob_length: Size of each signature region, or 0 for
                an unsigned payload

        Returns:
            Container bytes
        """
        if signature_blob_length < 0:
            raise InvalidArgumentError(
                f"Invalid signature blob length: {signature_blob_length}"
            )

        config = self.config
        manifest = PayloadManifest(
            block_size=config.block_size,
            minor_version=config.version.minor,
            max_timestamp=config.max_timestamp,
            data_size=len(data),
            data_hash=raw_hash_of_bytes(data),
        )
        if signature_blob_length:
            manifest = manifest.with_signatures(len(data), signature_blob_length)

        manifest_bytes = manifest.to_bytes()
        header = PayloadHeader(
            major_version=config.version.major,
            manifest_size=len(manifest_bytes),
            metadata_signature_size=signature_blob_length,
        )

        placeholder = b"\x00" * signature_blob_length
        return bytearray(
            header.to_bytes() + manifest_bytes + placeholder + data + placeholder
        )

    def write_payload(
        self,
        output_path: PathLike,
        data_blobs_path: PathLike,
        private_key_paths: Sequence[KeyPath] = (),
        signature_blob_length: int = 0,
    ) -> int:
        """Write a payload file.

        Without keys, both signature regions are filled with
        signature_blob_length zero bytes and nothing is signed. With keys,
        the regions are sized for those keys and filled with real
        signatures. The metadata size is the same in both cases.

        Args:
            output_path: Payload file to write
            data_blobs_path: File holding the data blobs
            private_key_paths: Signing keys, or empty for an unsigned payload
            signature_blob_length: Size to reserve when no keys are given

        Returns:
            Metadata size of the written payload

        Raises:
            InvalidArgumentError: If signature_blob_length contradicts the keys
            PayloadIOError: If a file cannot be read or written
        """
        try:
            data = Path(data_blobs_path).read_bytes()
        except OSError as e:
            raise PayloadIOError(f"Cannot read data blobs {data_blobs_path}: {e}") from e

        if private_key_paths:
            blob_length = signer.signature_blob_length(private_key_paths)
            if signature_blob_length and signature_blob_length != blob_length:
                raise InvalidArgumentError(
                    f"Reserved {signature_blob_length} bytes but keys "
                    f"produce {blob_length}"
                )
        else:
            blob_length = signature_blob_length

        container = self.build_container(data, blob_length)
        layout = parse_payload(container)

        if private_key_paths:
            hashes = hash_container(
                container, layout.metadata_size, layout.reserved_regions()
            )
            payload_blob, metadata_blob = signer.sign_hash_set(hashes, private_key_paths)
            _splice(container, layout.metadata_signature_region, metadata_blob)
            _splice(container, layout.payload_signature_region, payload_blob)

        _write_atomically(output_path, bytes(container))
        logger.info(
            "Wrote %s payload %s (%d bytes, metadata %d bytes)",
            "signed" if private_key_paths else "unsigned",
            output_path, len(container), layout.metadata_size,
        )
        return layout.metadata_size


def add_signature_to_payload(
    payload_path: PathLike,
    payload_signatures: Sequence[bytes],
    metadata_signatures: Sequence[bytes],
    signed_payload_path: PathLike,
) -> int:
    """Insert externally produced signatures into a reserved payload.

    Args:
        payload_path: Payload written with reserved signature regions
        payload_signatures: Raw signatures of the payload hash, in key order
        metadata_signatures: Raw signatures of the metadata hash, in key order
        signed_payload_path: Output path, may equal payload_path

    Returns:
        Metadata size of the signed payload

    Raises:
        PayloadFormatError: If the signatures do not fit the reserved regions
    """
    container = bytearray(read_payload(payload_path))
    layout = parse_payload(container)
    if not layout.is_signed():
        raise PayloadFormatError(f"{payload_path} has no reserved signature regions")

    payload_blob = encode_blob([SignatureEntry(data=s) for s in payload_signatures])
    metadata_blob = encode_blob([SignatureEntry(data=s) for s in metadata_signatures])
    _splice(container, layout.metadata_signature_region, metadata_blob)
    _splice(container, layout.payload_signature_region, payload_blob)

    _write_atomically(signed_payload_path, bytes(container))
    logger.info("Added signatures to %s", signed_payload_path)
    return layout.metadata_size


def payload_properties(payload_path: PathLike) -> dict[str, str]:
    """Get the properties an update server publishes for a payload.

    Returns:
        Dictionary with FILE_HASH, FILE_SIZE, METADATA_HASH and METADATA_SIZE;
        hashes are base64 SHA-256
    """
    data = read_payload(payload_path)
    layout = parse_payload(data)

    return {
        "FILE_HASH": base64.b64encode(raw_hash_of_file(Path(payload_path))).decode(),
        "FILE_SIZE": str(len(data)),
        "METADATA_HASH": base64.b64encode(
            raw_hash_of_bytes(data[:layout.metadata_size])
        ).decode(),
        "METADATA_SIZE": str(layout.metadata_size),
    }
