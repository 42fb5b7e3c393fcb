"""Configuration settings and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from jsonfixtures.errors import ConfigurationError, ErrorCode, ErrorContext

SUPPORTED_FORMATS = ("json", "yaml", "yml")


class FixtureConfig(BaseSettings):
    """Configuration for fixture loading."""

    model_config = SettingsConfigDict(
        env_prefix="JSONFIXTURES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    strict: bool = Field(
        default=False,
        description="Fail test units that declare fixtures without rollback isolation",
    )
    fixtures_root: Path = Path("fixtures")
    tests_dir: str = "tests"
    shared_dir: str = "shared"
    formats: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(SUPPORTED_FORMATS))
    encoding: str = "utf-8"

    @field_validator("formats", mode="before")
    @classmethod
    def validate_formats(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [part.strip() for part in v.split(",") if part.strip()]
        formats = [str(fmt).lower().lstrip(".") for fmt in v]
        if not formats:
            raise ValueError("At least one fixture format is required")
        invalid = set(formats) - set(SUPPORTED_FORMATS)
        if invalid:
            raise ValueError(f"Invalid fixture formats: {sorted(invalid)}. Valid: {SUPPORTED_FORMATS}")
        return formats

    @field_validator("tests_dir", "shared_dir")
    @classmethod
    def validate_dir_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Directory name cannot be empty")
        return v.strip()


def load_config(config_path: str | Path | None = None, **overrides: Any) -> FixtureConfig:
    """Load configuration from file and environment.

    Priority: explicit overrides > env vars > config file > defaults
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            config_data = _load_yaml(config_path)

    config_data.update(_get_env_overrides())
    config_data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return FixtureConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid fixture configuration: {e.error_count()} error(s)",
            context=ErrorContext(
                source=str(config_path) if config_path else None,
                extra={"errors": [err["msg"] for err in e.errors()]},
            ),
            cause=e,
        ) from e


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            message=f"Cannot read configuration file {path}: {e}",
            context=ErrorContext(source=str(path)),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            message=f"Configuration file {path} must contain a mapping",
            error_code=ErrorCode.INVALID_CONFIG,
            context=ErrorContext(source=str(path)),
        )
    return data


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    env_mappings = {
        "JSONFIXTURES_STRICT": ("strict", lambda x: x.lower() in ("true", "1", "yes")),
        "JSONFIXTURES_FIXTURES_ROOT": "fixtures_root",
        "JSONFIXTURES_TESTS_DIR": "tests_dir",
        "JSONFIXTURES_SHARED_DIR": "shared_dir",
        "JSONFIXTURES_FORMATS": "formats",
        "JSONFIXTURES_ENCODING": "encoding",
    }

    for env_key, config_key in env_mappings.items():
        value = os.environ.get(env_key)
        if value is not None:
            if isinstance(config_key, tuple):
                key, converter = config_key
                overrides[key] = converter(value)
            else:
                overrides[config_key] = value

    return overrides
