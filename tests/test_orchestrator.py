"""Tests for ota-sign orchestrator module."""

from pathlib import Path

import pytest

from ota_sign.errors import (
    InvalidArgumentError,
    InvalidStateError,
    KeyUnreadableError,
    LayoutInvariantViolation,
)
from ota_sign.orchestrator import SigningResult, SigningSession, SigningState
from ota_sign.payload import PayloadFile
from ota_sign.signer import hash_payload_for_signing, verify_signed_payload


class TestSigningSession:
    """Tests for the two-pass signing protocol."""

    @pytest.fixture
    def session(
        self,
        payload_file: PayloadFile,
        temp_dir: Path,
        data_blobs_file: Path,
        private_key: Path,
        public_key: Path,
    ) -> SigningSession:
        return SigningSession(
            payload_file,
            temp_dir / "payload.bin",
            data_blobs_file,
            [private_key],
            public_key,
        )

    def test_requires_keys(self, payload_file: PayloadFile, temp_dir: Path, data_blobs_file: Path):
        """Test a session needs at least one key."""
        with pytest.raises(InvalidArgumentError):
            SigningSession(payload_file, temp_dir / "payload.bin", data_blobs_file, [])

    def test_step_by_step(self, session: SigningSession, public_key: Path):
        """Test each step moves to the next state."""
        assert session.state == SigningState.UNSIGNED

        hashes = session.reserve()
        assert session.state == SigningState.HASH_KNOWN
        assert session.hashes == hashes
        assert session.metadata_size > 0

        metadata_size = session.sign()
        assert session.state == SigningState.SIGNED
        assert metadata_size == session.metadata_size
        assert hash_payload_for_signing(session.output_path, [256]) == hashes

        assert session.verify() is True
        assert session.state == SigningState.VERIFIED
        assert verify_signed_payload(session.output_path, public_key)

    def test_run(self, session: SigningSession):
        """Test running the whole protocol."""
        result = session.run()

        assert isinstance(result, SigningResult)
        assert result.state == SigningState.VERIFIED
        assert result.verified is True
        assert result.signature_blob_length == 264
        assert result.output_path.exists()

    def test_run_two_keys(
        self,
        payload_file: PayloadFile,
        temp_dir: Path,
        data_blobs_file: Path,
        private_key: Path,
        private_key2: Path,
        public_key2: Path,
    ):
        """Test a co-signed payload self-checks with the second key."""
        session = SigningSession(
            payload_file,
            temp_dir / "payload.bin",
            data_blobs_file,
            [private_key, private_key2],
            public_key2,
        )
        result = session.run()

        assert result.verified is True
        assert result.signature_blob_length == 528

    def test_run_without_verify(
        self,
        payload_file: PayloadFile,
        temp_dir: Path,
        data_blobs_file: Path,
        private_key: Path,
    ):
        """Test the self-check is skipped without a public key."""
        session = SigningSession(
            payload_file, temp_dir / "payload.bin", data_blobs_file, [private_key]
        )
        result = session.run()

        assert result.state == SigningState.SIGNED
        assert result.verified is False
        with pytest.raises(InvalidStateError):
            session.verify()

    def test_wrong_public_key(
        self,
        payload_file: PayloadFile,
        temp_dir: Path,
        data_blobs_file: Path,
        private_key: Path,
        public_key2: Path,
    ):
        """Test a failed self-check discards the payload."""
        output = temp_dir / "payload.bin"
        session = SigningSession(
            payload_file, output, data_blobs_file, [private_key], public_key2
        )
        result = session.run()

        assert result.verified is False
        assert session.state == SigningState.FAILED
        assert not output.exists()

    def test_out_of_order(self, session: SigningSession):
        """Test steps cannot be skipped or repeated."""
        with pytest.raises(InvalidStateError):
            session.sign()

        session.reserve()
        with pytest.raises(InvalidStateError):
            session.reserve()
        with pytest.raises(InvalidStateError):
            session.verify()

    def test_failure_removes_output(
        self,
        payload_file: PayloadFile,
        temp_dir: Path,
        data_blobs_file: Path,
        private_key: Path,
    ):
        """Test a failing step leaves the session FAILED with no file."""
        output = temp_dir / "payload.bin"
        session = SigningSession(payload_file, output, data_blobs_file, [private_key])
        session.reserve()
        assert output.exists()

        session.private_key_paths = [temp_dir / "missing.pem"]
        with pytest.raises(KeyUnreadableError):
            session.sign()

        assert session.state == SigningState.FAILED
        assert not output.exists()
        with pytest.raises(InvalidStateError):
            session.sign()

    def test_metadata_size_change_is_fatal(
        self, session: SigningSession, monkeypatch
    ):
        """Test a moved metadata boundary is an invariant violation."""
        session.reserve()

        original = PayloadFile.write_payload

        def shifted(self, *args, **kwargs):
            return original(self, *args, **kwargs) + 1

        monkeypatch.setattr(PayloadFile, "write_payload", shifted)
        with pytest.raises(LayoutInvariantViolation):
            session.sign()
        assert session.state == SigningState.FAILED
