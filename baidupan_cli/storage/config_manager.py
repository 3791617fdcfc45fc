"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from baidupan_cli.exceptions import ConfigurationError
from baidupan_cli.models.config import AppConfig

log = logging.getLogger(__name__)

SERVER_COOKIES_ENV = "BAIDUPAN_SERVER_COOKIES"

_INT_KEYS = {"max_file_size", "max_files", "scan_concurrency", "cleanup_batch_size"}
_FLOAT_KEYS = {
    "transfer_settle_delay",
    "link_propagation_delay",
    "user_cleanup_delay",
    "cleanup_stagger",
    "health_stagger",
    "health_interval",
    "cleanup_interval",
}


def read_env_cookies() -> list[str] | None:
    """
    Reads the static credential list from the environment (a JSON array).
    Returns None when the variable is unset or malformed.
    """
    raw = os.getenv(SERVER_COOKIES_ENV)
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        log.error(f"Failed to parse {SERVER_COOKIES_ENV}: {e}")
        return None
    if not isinstance(parsed, list):
        log.error(f"{SERVER_COOKIES_ENV} must be a JSON array of cookie strings.")
        return None
    return [str(c) for c in parsed]


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        # Cookies routinely contain '%', so interpolation stays off.
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> AppConfig:
        """
        Loads configuration from the INI file, applies environment and CLI
        overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated AppConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'baidupan-cli init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            config_from_file = self._get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

        if (env_cookies := read_env_cookies()) is not None:
            config_from_file["server_cookies"] = env_cookies

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return AppConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = AppConfig()
        for key in sorted(AppConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            # One secret per line; configparser indents continuation lines.
            return "\n".join(map(str, value))
        return "" if value is None else str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        result: dict[str, Any] = {
            "server_cookies": [
                line.strip()
                for line in section.get("server_cookies", "").splitlines()
                if line.strip()
            ],
        }
        for key in AppConfig.get_ini_keys() - {"server_cookies"}:
            if key not in section:
                continue
            if key in _INT_KEYS:
                result[key] = section.getint(key)
            elif key in _FLOAT_KEYS:
                result[key] = section.getfloat(key)
            else:
                result[key] = section.get(key)
        return result

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppConfig()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(AppConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(f"Migrating config: added missing key '{key}'.")

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
