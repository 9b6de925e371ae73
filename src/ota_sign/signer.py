"""Payload signing with one or more RSA keys.

A signature blob holds one signature per key, in key order. Its length
depends only on the number and size of the keys, which lets a payload reserve
space for the blob before anything has been signed.
"""

import base64
import logging
from pathlib import Path
from typing import Sequence, Union

from .blob import SignatureEntry, encode_blob, encoded_length
from .errors import InvalidArgumentError, LayoutInvariantViolation, PayloadFormatError
from .hashing import PayloadHashSet, hash_container, raw_hash_of_bytes
from .keys import KeyPath, RsaKey, signature_size
from .layout import PayloadLayout, parse_payload, read_payload
from .verify import find_matching_signature, pad_rsa2048_sha256_hash


logger = logging.getLogger("ota_sign.signer")


def signature_blob_length(private_key_paths: Sequence[KeyPath]) -> int:
    """Get the length of the blob the given keys would produce.

    Only the size of each key is read; nothing is signed.

    Args:
        private_key_paths: Keys in signing order

    Returns:
        Exact blob length in bytes

    Raises:
        InvalidArgumentError: If no keys are given
        KeyUnreadableError: If a key file cannot be read
        KeyMalformedError: If a key size cannot be determined
    """
    if not private_key_paths:
        raise InvalidArgumentError("At least one signing key is required")
    return encoded_length(signature_size(path) for path in private_key_paths)


def signature_blob_length_for_sizes(signature_sizes: Sequence[int]) -> int:
    """Get the blob length for signatures of known sizes."""
    if not signature_sizes:
        raise InvalidArgumentError("At least one signature size is required")
    if any(size <= 0 for size in signature_sizes):
        raise InvalidArgumentError(f"Invalid signature sizes: {list(signature_sizes)}")
    return encoded_length(signature_sizes)


def sign_hash_with_keys(
    padded_hash: bytes,
    private_key_paths: Sequence[KeyPath],
) -> bytes:
    """Sign a padded hash with every key and encode the signatures.

    Either every key signs or an exception is raised; no partial blob is
    returned.

    Args:
        padded_hash: Hash already padded to the key size
        private_key_paths: Private keys in signing order

    Returns:
        Encoded signature blob

    Raises:
        KeyUnreadableError: If a key file cannot be read
        KeyMalformedError: If a key file is not a private RSA key
        SigningBackendError: If a key fails to sign
        LayoutInvariantViolation: If the blob length differs from the
            predicted length
    """
    expected_length = signature_blob_length(private_key_paths)

    entries = []
    for path in private_key_paths:
        key = RsaKey.load_private(path)
        entries.append(SignatureEntry(data=key.sign_raw(padded_hash)))

    blob = encode_blob(entries)
    if len(blob) != expected_length:
        raise LayoutInvariantViolation(
            f"Signature blob is {len(blob)} bytes, predicted {expected_length}"
        )

    logger.debug("Signed with %d key(s), blob is %d bytes", len(entries), len(blob))
    return blob


def sign_digest_with_keys(
    digest: bytes,
    private_key_paths: Sequence[KeyPath],
) -> bytes:
    """Pad a raw SHA-256 digest and sign it with every key.

    Raises:
        InvalidDigestLengthError: If digest is not 32 bytes
    """
    return sign_hash_with_keys(pad_rsa2048_sha256_hash(digest), private_key_paths)


def sign_hash_set(
    hashes: PayloadHashSet,
    private_key_paths: Sequence[KeyPath],
) -> tuple[bytes, bytes]:
    """Sign both payload hashes.

    Returns:
        Tuple of (payload_signature_blob, metadata_signature_blob)
    """
    payload_blob = sign_digest_with_keys(hashes.payload_hash, private_key_paths)
    metadata_blob = sign_digest_with_keys(hashes.metadata_hash, private_key_paths)
    return payload_blob, metadata_blob


def _check_reserved_sizes(layout: PayloadLayout, blob_length: int) -> None:
    if not layout.is_signed():
        raise PayloadFormatError("Payload has no reserved signature regions")
    for region in layout.reserved_regions():
        if region.length != blob_length:
            raise PayloadFormatError(
                f"Reserved region at {region.offset} is {region.length} bytes, "
                f"signatures need {blob_length}"
            )


def hash_payload_for_signing(
    payload_path: Union[str, Path],
    signature_sizes: Sequence[int],
) -> PayloadHashSet:
    """Hash a payload the way it will be signed.

    The reserved signature regions are hashed as zero placeholders, so the
    result is the same before and after real signatures are written.

    Args:
        payload_path: Payload file with reserved signature regions
        signature_sizes: Size of each signature that will fill the regions

    Returns:
        PayloadHashSet for the payload

    Raises:
        PayloadIOError: If the file cannot be read
        PayloadFormatError: If the layout is invalid or the reserved regions
            do not fit the given signature sizes
    """
    data = read_payload(payload_path)
    layout = parse_payload(data)
    _check_reserved_sizes(layout, signature_blob_length_for_sizes(signature_sizes))

    hashes = hash_container(data, layout.metadata_size, layout.reserved_regions())
    logger.debug(
        "Hashed %s: payload %s, metadata %s",
        payload_path, hashes.payload_hash.hex()[:16], hashes.metadata_hash.hex()[:16],
    )
    return hashes


def hash_metadata_for_signing(
    payload_path: Union[str, Path],
    signature_sizes: Sequence[int],
) -> bytes:
    """Get only the metadata hash of hash_payload_for_signing."""
    return hash_payload_for_signing(payload_path, signature_sizes).metadata_hash


def get_metadata_signature(
    metadata: bytes,
    private_key_path: KeyPath,
) -> str:
    """Sign raw metadata bytes.

    Returns:
        Base64 encoded signature blob
    """
    blob = sign_digest_with_keys(raw_hash_of_bytes(metadata), [private_key_path])
    return base64.b64encode(blob).decode("ascii")


def verify_signed_payload(
    payload_path: Union[str, Path],
    public_key_path: KeyPath,
) -> bool:
    """Verify the metadata and payload signatures of a signed payload.

    Args:
        payload_path: Signed payload file
        public_key_path: PEM public key

    Returns:
        True if both signatures have an entry that matches the key

    Raises:
        PayloadIOError: If the file cannot be read
        PayloadFormatError: If the payload has no signatures or an invalid
            layout
        MalformedBlobError: If a signature blob cannot be decoded
    """
    data = read_payload(payload_path)
    layout = parse_payload(data)
    if not layout.is_signed():
        raise PayloadFormatError(f"{payload_path} is not signed")

    public_key = RsaKey.load(public_key_path)
    hashes = hash_container(data, layout.metadata_size, layout.reserved_regions())

    checks = (
        ("metadata", layout.metadata_signature_region, hashes.metadata_hash),
        ("payload", layout.payload_signature_region, hashes.payload_hash),
    )
    for name, region, digest in checks:
        blob = data[region.offset:region.end]
        match = find_matching_signature(blob, public_key, pad_rsa2048_sha256_hash(digest))
        if match is None:
            logger.info("%s signature of %s does not match %s", name, payload_path, public_key_path)
            return False

    logger.info("Verified %s against %s", payload_path, public_key_path)
    return True
