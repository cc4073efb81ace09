"""Configuration manager for loading and validating config files."""

import copy
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar, Union

import yaml

T = TypeVar("T")


logger = logging.getLogger(__name__)

DEFAULT_DIAL_SEQUENCE = "9,"

_DIAL_SEQUENCE_PATTERN = re.compile(r"[0-9,]+")


class ConfigError(Exception):
    """Raised when configuration is invalid."""


def validate_dial_sequence(sequence: Any) -> str:
    """Check that a dial sequence only contains digits and commas.

    The sequence ends up inside an ATDT command, so anything else could
    smuggle extra AT commands onto the line.

    Args:
        sequence: Dial sequence to check (e.g. "9,")

    Returns:
        The validated sequence

    Raises:
        ConfigError: If the sequence is empty, not a string, or has other characters
    """
    if not isinstance(sequence, str):
        raise ConfigError("'dial_sequence' must be a string")
    if not _DIAL_SEQUENCE_PATTERN.fullmatch(sequence):
        raise ConfigError(
            f"Invalid dial sequence {sequence!r}: only digits and commas are allowed"
        )
    return sequence


class ConfigManager:
    """Manages loading and accessing configuration from YAML files."""

    def __init__(self, user_config_path: str) -> None:
        """Initialize the configuration manager.

        Args:
            user_config_path: Path to user config file (required)

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        self._config: Dict[str, Any] = {}
        self._user_config_path = user_config_path
        self._load_config()

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load a YAML file and return its contents.

        Args:
            path: Path to YAML file

        Returns:
            Dictionary containing the YAML contents

        Raises:
            ConfigError: If file cannot be read or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
                if content is None:
                    return {}
                if not isinstance(content, dict):
                    raise ConfigError(f"Config file {path} must contain a mapping")
                return content
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

    def _validate_config(self) -> None:  # pylint: disable=too-many-branches
        """Validate the loaded configuration.

        Raises:
            ConfigError: If configuration is invalid
        """
        location_id = self._config.get("location_id")
        if not location_id or not isinstance(location_id, str):
            raise ConfigError("Missing required setting: location_id")

        # Checked here so a bad sequence stops us before the modem is touched
        validate_dial_sequence(self._config.get("dial_sequence", DEFAULT_DIAL_SEQUENCE))

        for section in ("serial", "store", "twilio", "web"):
            if section in self._config and not isinstance(self._config[section], dict):
                raise ConfigError(f"'{section}' section must be a dictionary")

        baud_rate = self.get("serial.baud_rate")
        if baud_rate is not None:
            if not isinstance(baud_rate, int) or isinstance(baud_rate, bool):
                raise ConfigError("'serial.baud_rate' must be an integer")
            if baud_rate <= 0:
                raise ConfigError("'serial.baud_rate' must be positive")

        web_port = self.get("web.port")
        if web_port is not None:
            if not isinstance(web_port, int) or isinstance(web_port, bool):
                raise ConfigError("'web.port' must be an integer")
            if not 0 < web_port < 65536:
                raise ConfigError("'web.port' must be between 1 and 65535")

        # Note: serial.port, store and twilio can be missing in mock mode, so
        # they are checked when the real collaborators are built

    def _load_config(self) -> None:
        """Load configuration from user config file.

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        config_path = Path(self._user_config_path)

        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}\n"
                f"Please create a config file. See config.yml.example for reference."
            )

        logger.info("Loading configuration from: %s", config_path)
        self._config = self._load_yaml_file(config_path)

        self._validate_config()
        logger.info("Configuration loaded and validated successfully")

    def get(self, key: str, default: Optional[T] = None) -> Union[Any, T]:
        """Get a configuration value by key.

        Supports dot notation for nested values (e.g., 'serial.port')

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default (type matches default when provided)
        """
        keys = key.split(".")
        value: Any = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default  # type: ignore[return-value]

        return value

    def get_location_id(self) -> str:
        """Get the location this process controls the door for."""
        location_id: str = self._config["location_id"]
        return location_id

    def get_dial_sequence(self) -> str:
        """Get the validated dial sequence used to trigger the door."""
        sequence: str = self.get("dial_sequence", DEFAULT_DIAL_SEQUENCE)
        return sequence

    def get_serial_config(self) -> Dict[str, Any]:
        """Get serial port configuration.

        Returns:
            Serial configuration dictionary
        """
        return self.get("serial", {})

    def get_store_config(self) -> Dict[str, Any]:
        """Get authorization store configuration.

        Returns:
            Store configuration dictionary
        """
        return self.get("store", {})

    def get_twilio_config(self) -> Dict[str, Any]:
        """Get Twilio configuration.

        Returns:
            Twilio configuration dictionary
        """
        return self.get("twilio", {})

    def to_dict_safe(self) -> Dict[str, Any]:
        """Export config with sensitive data masked.

        Returns:
            Config dict with the Twilio token and store URL masked
        """
        config = copy.deepcopy(self._config)
        if "twilio" in config and "auth_token" in config["twilio"]:
            config["twilio"]["auth_token"] = "***MASKED***"
        if "store" in config and "url" in config["store"]:
            config["store"]["url"] = "***MASKED***"
        return config
