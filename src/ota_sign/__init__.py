"""OTA Update Payload Signing Tool.

This package signs and verifies over-the-air update payloads, including:
- Signature blob size prediction before signing
- Multi-key RSA-2048 signing of payload and metadata hashes
- Payload writing with reserved signature regions
- Any-of signature verification against a public key
"""

__version__ = "0.1.0"

from .blob import SignatureEntry, decode_blob, encode_blob
from .hashing import PayloadHashSet, ReservedRegion, hash_container
from .orchestrator import SigningResult, SigningSession, SigningState
from .payload import PayloadFile
from .signer import (
    hash_payload_for_signing,
    sign_digest_with_keys,
    sign_hash_with_keys,
    signature_blob_length,
    verify_signed_payload,
)
from .verify import pad_rsa2048_sha256_hash, verify_signature

__all__ = [
    "SignatureEntry",
    "decode_blob",
    "encode_blob",
    "PayloadHashSet",
    "ReservedRegion",
    "hash_container",
    "SigningResult",
    "SigningSession",
    "SigningState",
    "PayloadFile",
    "hash_payload_for_signing",
    "sign_digest_with_keys",
    "sign_hash_with_keys",
    "signature_blob_length",
    "verify_signed_payload",
    "pad_rsa2048_sha256_hash",
    "verify_signature",
]
