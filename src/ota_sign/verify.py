"""Signature verification for OTA payloads."""

import logging
from typing import Optional

from .blob import decode_blob
from .errors import InvalidDigestLengthError
from .hashing import DIGEST_SIZE
from .keys import KeyPath, RsaKey


logger = logging.getLogger("ota_sign.verify")

RSA2048_SIZE = 256

# ASN.1 DigestInfo header for SHA-256 (RFC 8017, section 9.2)
SHA256_DIGEST_INFO_PREFIX = bytes([
    0x30, 0x31, 0x30, 0x0D, 0x06, 0x09, 0x60, 0x86,
    0x48, 0x01, 0x65, 0x03, 0x04, 0x02, 0x01, 0x05,
    0x00, 0x04, 0x20,
])


def pad_rsa2048_sha256_hash(digest: bytes) -> bytes:
    """Pad a SHA-256 digest for raw RSA-2048 signing.

    Produces the EMSA-PKCS1-v1_5 encoding::

        00 01 FF .. FF 00 || DigestInfo(SHA-256) || digest

    Args:
        digest: 32-byte SHA-256 digest

    Returns:
        256-byte padded hash

    Raises:
        InvalidDigestLengthError: If digest is not 32 bytes
    """
    if len(digest) != DIGEST_SIZE:
        raise InvalidDigestLengthError(
            f"Digest is {len(digest)} bytes, expected {DIGEST_SIZE}"
        )
    padding_len = RSA2048_SIZE - 3 - len(SHA256_DIGEST_INFO_PREFIX) - DIGEST_SIZE
    return (
        b"\x00\x01"
        + b"\xff" * padding_len
        + b"\x00"
        + SHA256_DIGEST_INFO_PREFIX
        + bytes(digest)
    )


def find_matching_signature(
    signature_blob: bytes,
    public_key: RsaKey,
    expected_padded_hash: bytes,
) -> Optional[int]:
    """Get the index of the first entry that verifies, or None."""
    entries = decode_blob(signature_blob)
    for index, entry in enumerate(entries):
        if public_key.recover_raw(entry.data) == expected_padded_hash:
            logger.debug(
                "Signature %d (version %d) matches %s",
                index, entry.version, public_key.path,
            )
            return index
    logger.debug(
        "None of %d signatures match %s", len(entries), public_key.path
    )
    return None


def verify_signature(
    signature_blob: bytes,
    public_key_path: KeyPath,
    expected_padded_hash: bytes,
) -> bool:
    """Check a signature blob against one public key.

    The blob may hold signatures from several keys; it is accepted if any of
    them verifies.

    Args:
        signature_blob: Encoded signature blob
        public_key_path: PEM public key
        expected_padded_hash: Padded hash the signatures should recover to

    Returns:
        True if any signature in the blob matches

    Raises:
        MalformedBlobError: If the blob cannot be decoded
        KeyUnreadableError: If the key file cannot be read
        KeyMalformedError: If the key file is not a supported RSA key
    """
    public_key = RsaKey.load(public_key_path)
    return find_matching_signature(
        signature_blob, public_key, expected_padded_hash
    ) is not None
