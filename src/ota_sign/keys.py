"""RSA key access for payload signing.

Keys are PEM files referenced by path. They are loaded for the duration of a
single sign or verify call and never cached. The transforms here are raw RSA
through the key object's own primitives: the caller supplies a fully padded
value and no hashing or padding is applied.
"""

import logging
from pathlib import Path
from typing import Union

from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA
from Crypto.Util.number import bytes_to_long, long_to_bytes

from .errors import KeyMalformedError, KeyUnreadableError, SigningBackendError


logger = logging.getLogger("ota_sign.keys")

KeyPath = Union[str, Path]

# Modulus size in bits -> signature size in bytes
SUPPORTED_KEY_SIZES = {
    2048: 256,
}


class RsaKey:
    """An RSA key loaded from a PEM file."""

    def __init__(self, key: RSA.RsaKey, path: KeyPath) -> None:
        """Initialize from a parsed key.

        Args:
            key: Parsed pycryptodome key
            path: File the key was read from

        Raises:
            KeyMalformedError: If the modulus size is not supported
        """
        if key.size_in_bits() not in SUPPORTED_KEY_SIZES:
            raise KeyMalformedError(
                f"{path}: unsupported RSA key size {key.size_in_bits()} bits"
            )
        self._key = key
        self.path = Path(path)

    @classmethod
    def load(cls, path: KeyPath) -> "RsaKey":
        """Load a private or public key from a PEM file.

        Raises:
            KeyUnreadableError: If the file cannot be read
            KeyMalformedError: If the file does not hold an RSA key
        """
        try:
            with open(path, "rb") as f:
                pem = f.read()
        except OSError as e:
            raise KeyUnreadableError(f"Cannot read key {path}: {e}") from e

        try:
            key = RSA.import_key(pem)
        except (ValueError, IndexError, TypeError) as e:
            raise KeyMalformedError(f"{path} is not a PEM RSA key: {e}") from e

        return cls(key, path)

    @classmethod
    def load_private(cls, path: KeyPath) -> "RsaKey":
        """Load a key that must include the private exponent."""
        key = cls.load(path)
        if not key.has_private():
            raise KeyMalformedError(f"{path} does not contain a private key")
        return key

    @property
    def size_in_bits(self) -> int:
        return self._key.size_in_bits()

    @property
    def size_in_bytes(self) -> int:
        """Modulus size, which is also the signature size."""
        return self._key.size_in_bytes()

    def has_private(self) -> bool:
        return self._key.has_private()

    def fingerprint(self) -> str:
        """Get the SHA-256 of the DER public key, for identification."""
        der = self._key.public_key().export_key(format="DER")
        return SHA256.new(der).hexdigest()

    def sign_raw(self, padded: bytes) -> bytes:
        """Apply the private-key transform to a padded value.

        Args:
            padded: Value of exactly size_in_bytes bytes, already padded

        Returns:
            Signature of size_in_bytes bytes

        Raises:
            SigningBackendError: If the value cannot be signed with this key
        """
        if not self.has_private():
            raise SigningBackendError(f"{self.path}: cannot sign with a public key")
        if len(padded) != self.size_in_bytes:
            raise SigningBackendError(
                f"{self.path}: padded value is {len(padded)} bytes, "
                f"expected {self.size_in_bytes}"
            )

        m = bytes_to_long(padded)
        if m >= self._key.n:
            raise SigningBackendError(f"{self.path}: padded value exceeds modulus")

        # Blinded CRT private operation of the key object
        try:
            s = self._key._decrypt(m)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise SigningBackendError(f"{self.path}: RSA transform failed: {e}") from e

        logger.debug("Signed %d bytes with %s", len(padded), self.path)
        return long_to_bytes(s, self.size_in_bytes)

    def recover_raw(self, signature: bytes) -> bytes:
        """Apply the public-key transform to a signature.

        Returns:
            Recovered padded value, or b"" if the signature is out of range
        """
        if len(signature) != self.size_in_bytes:
            return b""
        s = bytes_to_long(signature)
        if s >= self._key.n:
            return b""
        m = self._key._encrypt(s)
        return long_to_bytes(m, self.size_in_bytes)


def signature_size(path: KeyPath) -> int:
    """Get the signature size of a key without using it.

    Raises:
        KeyUnreadableError: If the file cannot be read
        KeyMalformedError: If the key size class cannot be determined
    """
    key = RsaKey.load(path)
    return SUPPORTED_KEY_SIZES[key.size_in_bits]
