"""Configuration management for OTA payload signing."""

import json
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from .errors import ConfigError


# Major payload versions this writer produces
BRILLO_MAJOR_PAYLOAD_VERSION = 2
SUPPORTED_MAJOR_VERSIONS = (BRILLO_MAJOR_PAYLOAD_VERSION,)


class PayloadVersion(BaseModel):
    """Payload format version."""

    major: int = BRILLO_MAJOR_PAYLOAD_VERSION
    minor: int = 0

    @field_validator("major")
    @classmethod
    def _check_major(cls, value: int) -> int:
        if value not in SUPPORTED_MAJOR_VERSIONS:
            raise ValueError(f"Unsupported major payload version: {value}")
        return value

    @field_validator("minor")
    @classmethod
    def _check_minor(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Minor payload version must be non-negative")
        return value


class PayloadGenerationConfig(BaseModel):
    """Parameters fixed for the lifetime of a payload file."""

    version: PayloadVersion = PayloadVersion()
    block_size: int = 4096
    max_timestamp: int = 0

    @field_validator("block_size")
    @classmethod
    def _check_block_size(cls, value: int) -> int:
        if value <= 0 or value & (value - 1):
            raise ValueError(f"Block size must be a power of two: {value}")
        return value


class SigningConfig(BaseModel):
    """Keys used to sign and self-check a payload."""

    private_keys: list[str] = []
    public_key: Optional[str] = None
    verify_after_signing: bool = True


class OtaSignConfig(BaseModel):
    """Complete signing configuration."""

    generation: PayloadGenerationConfig = PayloadGenerationConfig()
    signing: SigningConfig = SigningConfig()


def _config_format(config_path: Path) -> str:
    if config_path.suffix in (".yaml", ".yml"):
        return "yaml"
    if config_path.suffix == ".json":
        return "json"
    raise ConfigError(f"Unsupported config format: {config_path.suffix}")


def load_config(config_path: Path) -> OtaSignConfig:
    """Load configuration from a YAML or JSON file.

    Sections missing from the file keep their defaults.

    Raises:
        ConfigError: If the file cannot be read or parsed, or a value fails
            validation
    """
    config_path = Path(config_path)
    fmt = _config_format(config_path)

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) if fmt == "yaml" else json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"{config_path} is not valid {fmt}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must hold a mapping at the top level")

    try:
        return OtaSignConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e


def dump_config(config: OtaSignConfig, fmt: str = "yaml") -> str:
    """Serialize configuration as YAML or JSON text."""
    data = config.model_dump()
    if fmt == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    if fmt == "json":
        return json.dumps(data, indent=2) + "\n"
    raise ConfigError(f"Unsupported config format: {fmt}")


def save_config(config: OtaSignConfig, config_path: Path) -> None:
    """Write configuration to a file, choosing the format by suffix.

    Raises:
        ConfigError: If the suffix is not a supported format or the file
            cannot be written
    """
    config_path = Path(config_path)
    text = dump_config(config, _config_format(config_path))
    try:
        config_path.write_text(text)
    except OSError as e:
        raise ConfigError(f"Cannot write config {config_path}: {e}") from e
