"""Tests for ota-sign config module."""

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from ota_sign.config import (
    BRILLO_MAJOR_PAYLOAD_VERSION,
    OtaSignConfig,
    PayloadGenerationConfig,
    PayloadVersion,
    SigningConfig,
    dump_config,
    load_config,
    save_config,
)
from ota_sign.errors import ConfigError


class TestDefaults:
    """Tests for default configuration values."""

    def test_generation_defaults(self):
        """Test default payload generation parameters."""
        config = PayloadGenerationConfig()
        assert config.version.major == BRILLO_MAJOR_PAYLOAD_VERSION == 2
        assert config.version.minor == 0
        assert config.block_size == 4096
        assert config.max_timestamp == 0

    def test_signing_defaults(self):
        """Test default signing parameters."""
        config = SigningConfig()
        assert config.private_keys == []
        assert config.public_key is None
        assert config.verify_after_signing is True


class TestValidation:
    """Tests for configuration validation."""

    def test_unsupported_major_version(self):
        """Test only the supported major version is accepted."""
        with pytest.raises(ValidationError):
            PayloadVersion(major=1)

    def test_negative_minor_version(self):
        with pytest.raises(ValidationError):
            PayloadVersion(minor=-1)

    @pytest.mark.parametrize("block_size", [0, -4096, 1000, 4095])
    def test_invalid_block_size(self, block_size):
        """Test block sizes that are not powers of two."""
        with pytest.raises(ValidationError):
            PayloadGenerationConfig(block_size=block_size)


class TestConfigFiles:
    """Tests for loading and saving configuration files."""

    def test_yaml_round_trip(self, temp_dir: Path):
        """Test saving and loading YAML configuration."""
        config = OtaSignConfig(
            generation=PayloadGenerationConfig(block_size=8192, max_timestamp=7),
            signing=SigningConfig(private_keys=["a.pem", "b.pem"], public_key="a.pub.pem"),
        )
        path = temp_dir / "config.yaml"
        save_config(config, path)

        assert load_config(path) == config

    def test_json_round_trip(self, temp_dir: Path):
        """Test saving and loading JSON configuration."""
        config = OtaSignConfig(signing=SigningConfig(verify_after_signing=False))
        path = temp_dir / "config.json"
        save_config(config, path)

        assert json.loads(path.read_text())["signing"]["verify_after_signing"] is False
        assert load_config(path) == config

    def test_partial_file(self, temp_dir: Path):
        """Test missing sections fall back to defaults."""
        path = temp_dir / "config.yml"
        path.write_text("generation:\n  max_timestamp: 99\n")

        config = load_config(path)
        assert config.generation.max_timestamp == 99
        assert config.generation.block_size == 4096
        assert config.signing == SigningConfig()

    def test_empty_file(self, temp_dir: Path):
        """Test an empty YAML file gives the defaults."""
        path = temp_dir / "config.yaml"
        path.write_text("")

        assert load_config(path) == OtaSignConfig()

    def test_unsupported_format(self, temp_dir: Path):
        """Test an unknown file extension."""
        path = temp_dir / "config.toml"
        path.write_text("")

        with pytest.raises(ConfigError):
            load_config(path)
        with pytest.raises(ConfigError):
            save_config(OtaSignConfig(), path)

    def test_invalid_value(self, temp_dir: Path):
        """Test a value that fails validation is reported as ConfigError."""
        path = temp_dir / "config.yaml"
        path.write_text("generation:\n  block_size: 3\n")

        with pytest.raises(ConfigError, match="block_size"):
            load_config(path)

    def test_unparseable_file(self, temp_dir: Path):
        """Test syntax errors in YAML and JSON files."""
        yaml_path = temp_dir / "config.yaml"
        yaml_path.write_text("generation: [unclosed\n")
        json_path = temp_dir / "config.json"
        json_path.write_text("{not json")

        with pytest.raises(ConfigError):
            load_config(yaml_path)
        with pytest.raises(ConfigError):
            load_config(json_path)

    def test_not_a_mapping(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("- generation\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_file(self, temp_dir: Path):
        with pytest.raises(ConfigError):
            load_config(temp_dir / "missing.yaml")

    def test_dump_config(self):
        """Test serialized configuration content."""
        assert yaml.safe_load(dump_config(OtaSignConfig(), "yaml")) == OtaSignConfig().model_dump()
        assert json.loads(dump_config(OtaSignConfig(), "json")) == OtaSignConfig().model_dump()

        with pytest.raises(ConfigError):
            dump_config(OtaSignConfig(), "ini")
