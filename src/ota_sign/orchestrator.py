"""Two-pass payload signing.

Signing a payload goes through these states::

    UNSIGNED -> HASH_KNOWN -> SIGNED -> VERIFIED

1. Reserve signature space, write the unsigned payload and hash it.
2. Sign the hashes, write the signed payload and check that the layout did
   not move and that the written signatures are the ones computed from the
   reserved hashes.
3. Verify the signed payload against the public key.

Any failure moves the session to FAILED and removes the output file.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

from .errors import InvalidArgumentError, InvalidStateError, LayoutInvariantViolation
from .hashing import PayloadHashSet
from .keys import KeyPath, signature_size
from .layout import parse_payload, read_payload
from .payload import PayloadFile
from .signer import (
    hash_payload_for_signing,
    sign_hash_set,
    signature_blob_length,
    verify_signed_payload,
)


logger = logging.getLogger("ota_sign.orchestrator")


class _VerificationMismatch(Exception):
    """Signed payload did not verify against the session's public key."""


class SigningState(Enum):
    """States of a signing session."""

    UNSIGNED = "unsigned"
    HASH_KNOWN = "hash_known"
    SIGNED = "signed"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class SigningResult:
    """Outcome of a completed signing session."""

    output_path: Path
    state: SigningState
    metadata_size: int
    signature_blob_length: int
    hashes: PayloadHashSet
    verified: bool


class SigningSession:
    """Drives the two-pass signing of one payload file.

    A session is single-use and its steps must run in order; it is not safe
    to share one between threads.
    """

    def __init__(
        self,
        payload_file: PayloadFile,
        output_path: Union[str, Path],
        data_blobs_path: Union[str, Path],
        private_key_paths: Sequence[KeyPath],
        public_key_path: Optional[KeyPath] = None,
    ) -> None:
        """Initialize signing session.

        Args:
            payload_file: Writer initialized with the generation config
            output_path: Payload file to produce
            data_blobs_path: File holding the data blobs
            private_key_paths: Signing keys, in order
            public_key_path: Key for the final self-check
        """
        if not private_key_paths:
            raise InvalidArgumentError("At least one signing key is required")

        self.payload_file = payload_file
        self.output_path = Path(output_path)
        self.data_blobs_path = Path(data_blobs_path)
        self.private_key_paths = list(private_key_paths)
        self.public_key_path = public_key_path

        self._state = SigningState.UNSIGNED
        self._blob_length = 0
        self._metadata_size = 0
        self._hashes: Optional[PayloadHashSet] = None

    @property
    def state(self) -> SigningState:
        return self._state

    @property
    def hashes(self) -> Optional[PayloadHashSet]:
        return self._hashes

    @property
    def metadata_size(self) -> int:
        return self._metadata_size

    @contextmanager
    def _step(self, expected: SigningState, target: SigningState) -> Iterator[None]:
        if self._state != expected:
            raise InvalidStateError(
                f"Cannot move to {target.value} from {self._state.value}"
            )
        try:
            yield
        except BaseException:
            self._fail()
            raise
        logger.info("%s: %s -> %s", self.output_path, self._state.value, target.value)
        self._state = target

    def _fail(self) -> None:
        self._state = SigningState.FAILED
        try:
            self.output_path.unlink()
        except FileNotFoundError:
            pass
        logger.warning("Signing %s failed", self.output_path)

    def reserve(self) -> PayloadHashSet:
        """Write the unsigned payload and hash it.

        Returns:
            Hashes that the signatures will cover
        """
        with self._step(SigningState.UNSIGNED, SigningState.HASH_KNOWN):
            self._blob_length = signature_blob_length(self.private_key_paths)
            self._metadata_size = self.payload_file.write_payload(
                self.output_path,
                self.data_blobs_path,
                signature_blob_length=self._blob_length,
            )
            sizes = [signature_size(path) for path in self.private_key_paths]
            self._hashes = hash_payload_for_signing(self.output_path, sizes)
        return self._hashes

    def sign(self) -> int:
        """Write the signed payload.

        Returns:
            Metadata size of the signed payload

        Raises:
            LayoutInvariantViolation: If the signed write moved the metadata
                boundary or embedded different signatures
        """
        with self._step(SigningState.HASH_KNOWN, SigningState.SIGNED):
            payload_blob, metadata_blob = sign_hash_set(
                self._hashes, self.private_key_paths
            )
            metadata_size = self.payload_file.write_payload(
                self.output_path,
                self.data_blobs_path,
                self.private_key_paths,
            )
            if metadata_size != self._metadata_size:
                raise LayoutInvariantViolation(
                    f"Metadata size changed from {self._metadata_size} "
                    f"to {metadata_size} when signing"
                )

            data = read_payload(self.output_path)
            layout = parse_payload(data)
            metadata_region = layout.metadata_signature_region
            payload_region = layout.payload_signature_region
            if (
                data[metadata_region.offset:metadata_region.end] != metadata_blob
                or data[payload_region.offset:payload_region.end] != payload_blob
            ):
                raise LayoutInvariantViolation(
                    "Signed payload does not carry the signatures of its "
                    "reserved hashes"
                )
        return metadata_size

    def verify(self) -> bool:
        """Check the signed payload against the public key.

        Returns:
            True if the payload verifies; on False the session is FAILED
        """
        if self.public_key_path is None:
            raise InvalidStateError("No public key configured for verification")

        try:
            with self._step(SigningState.SIGNED, SigningState.VERIFIED):
                if not verify_signed_payload(self.output_path, self.public_key_path):
                    raise _VerificationMismatch()
        except _VerificationMismatch:
            return False
        return True

    def run(self, verify: bool = True) -> SigningResult:
        """Run every step of the protocol.

        Args:
            verify: Whether to run the self-check; requires a public key

        Returns:
            SigningResult describing the signed payload
        """
        self.reserve()
        metadata_size = self.sign()

        verified = False
        if verify and self.public_key_path is not None:
            verified = self.verify()

        return SigningResult(
            output_path=self.output_path,
            state=self._state,
            metadata_size=metadata_size,
            signature_blob_length=self._blob_length,
            hashes=self._hashes,
            verified=verified,
        )
