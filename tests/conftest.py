"""Pytest configuration and fixtures for ota-sign tests."""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from ota_sign.config import PayloadGenerationConfig
from ota_sign.payload import PayloadFile

# Test keys were generated with:
#   openssl genrsa -traditional -out unittest_key.pem 2048
#   openssl rsa -in unittest_key.pem -pubout -out unittest_key.pub.pem
TESTDATA = Path(__file__).parent / "testdata"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def private_key() -> Path:
    return TESTDATA / "unittest_key.pem"


@pytest.fixture
def public_key() -> Path:
    return TESTDATA / "unittest_key.pub.pem"


@pytest.fixture
def private_key2() -> Path:
    return TESTDATA / "unittest_key2.pem"


@pytest.fixture
def public_key2() -> Path:
    return TESTDATA / "unittest_key2.pub.pem"


@pytest.fixture
def data_blobs_file(temp_dir: Path) -> Path:
    """Create a data blobs file on disk."""
    path = temp_dir / "blobs.bin"
    path.write_bytes(b"OPS\x00" + os.urandom(8192))
    return path


@pytest.fixture
def empty_blobs_file(temp_dir: Path) -> Path:
    """Data blobs file for a payload without operations."""
    path = temp_dir / "empty.bin"
    path.write_bytes(b"")
    return path


@pytest.fixture
def payload_file() -> PayloadFile:
    """PayloadFile initialized with the default configuration."""
    payload = PayloadFile()
    payload.init(PayloadGenerationConfig())
    return payload
