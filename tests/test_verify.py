"""Tests for ota-sign verify module."""

import pytest

from ota_sign.blob import SignatureEntry, encode_blob
from ota_sign.errors import InvalidDigestLengthError, MalformedBlobError
from ota_sign.keys import RsaKey
from ota_sign.verify import (
    SHA256_DIGEST_INFO_PREFIX,
    find_matching_signature,
    pad_rsa2048_sha256_hash,
    verify_signature,
)


DIGEST = bytes(range(32))


class TestPadRsa2048Sha256Hash:
    """Tests for the hash padder."""

    def test_length(self):
        """Test the padded hash matches the RSA-2048 modulus size."""
        assert len(pad_rsa2048_sha256_hash(DIGEST)) == 256

    def test_structure(self):
        """Test the EMSA-PKCS1-v1_5 layout."""
        padded = pad_rsa2048_sha256_hash(DIGEST)

        assert padded[:2] == b"\x00\x01"
        assert padded[2:204] == b"\xff" * 202
        assert padded[204] == 0
        assert padded[205:224] == SHA256_DIGEST_INFO_PREFIX
        assert padded[224:] == DIGEST

    def test_deterministic(self):
        """Test the same digest always pads the same way."""
        assert pad_rsa2048_sha256_hash(DIGEST) == pad_rsa2048_sha256_hash(DIGEST)

    @pytest.mark.parametrize("size", [0, 20, 31, 33, 64])
    def test_invalid_digest_length(self, size):
        """Test digests that are not 32 bytes."""
        with pytest.raises(InvalidDigestLengthError):
            pad_rsa2048_sha256_hash(b"\x01" * size)

    def test_invalid_digest_is_value_error(self):
        """Test callers can catch the error as ValueError."""
        with pytest.raises(ValueError):
            pad_rsa2048_sha256_hash(b"")


class TestVerifySignature:
    """Tests for blob verification edge cases."""

    def test_malformed_blob(self, public_key):
        """Test undecodable blobs are errors, not mismatches."""
        with pytest.raises(MalformedBlobError):
            verify_signature(b"\x00" * 264, public_key, pad_rsa2048_sha256_hash(DIGEST))

    def test_empty_blob(self, public_key):
        """Test a blob without entries does not verify."""
        assert verify_signature(b"", public_key, pad_rsa2048_sha256_hash(DIGEST)) is False

    def test_wrong_size_entry(self, public_key):
        """Test entries of the wrong size never match."""
        blob = encode_blob([SignatureEntry(data=b"\x01" * 100)])
        assert verify_signature(blob, public_key, pad_rsa2048_sha256_hash(DIGEST)) is False

    def test_finds_matching_entry(self, private_key, public_key2, private_key2):
        """Test the index of the entry that matches."""
        padded = pad_rsa2048_sha256_hash(DIGEST)
        blob = encode_blob([
            SignatureEntry(data=RsaKey.load_private(private_key).sign_raw(padded)),
            SignatureEntry(data=RsaKey.load_private(private_key2).sign_raw(padded)),
        ])

        assert find_matching_signature(blob, RsaKey.load(public_key2), padded) == 1
