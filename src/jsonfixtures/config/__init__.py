"""Configuration management for jsonfixtures."""

from jsonfixtures.config.settings import SUPPORTED_FORMATS, FixtureConfig, load_config

__all__ = [
    "FixtureConfig",
    "load_config",
    "SUPPORTED_FORMATS",
]
