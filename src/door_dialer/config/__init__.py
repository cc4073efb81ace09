"""Configuration loading and validation."""

from door_dialer.config.config_manager import ConfigError, ConfigManager, validate_dial_sequence

__all__ = ["ConfigError", "ConfigManager", "validate_dial_sequence"]
