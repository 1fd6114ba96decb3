"""
Reads, writes and upgrades the player's INI configuration file.

Player settings live in the `DEFAULT` section; the renderer palette lives in a
`[theme]` section.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from offline_tracks.exceptions import ConfigurationError
from offline_tracks.models.config import PlayerConfig, Theme

log = logging.getLogger(__name__)

THEME_SECTION = "theme"


def _ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigManager:
    """Owns one configuration file on disk."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    @property
    def default_store_dir(self) -> Path:
        return self.config_file_path.parent / "store"

    def _defaults(self) -> PlayerConfig:
        return PlayerConfig.model_construct(
            store_dir=str(self.default_store_dir), theme=Theme()
        )

    def _write(self, parser: configparser.ConfigParser) -> None:
        self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file_path, "w", encoding="utf-8") as config_file:
            parser.write(config_file)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> PlayerConfig:
        """
        Builds a validated PlayerConfig from the file.

        Args:
            cli_options: Values given on the command line; they win over the file.

        Raises:
            ConfigurationError: If the file does not exist, cannot be parsed, or
            holds values that fail validation.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Run 'offline-tracks init' to create one."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._add_missing_keys():
            log.info("[yellow]New settings were added to the configuration file.[/yellow]")

        try:
            values = self._read_values()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e
        values.update(cli_options or {})

        try:
            return PlayerConfig(**values, config_path=str(self.config_file_path.parent))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """Writes a fresh configuration file, using defaults for unset keys."""
        settings = settings or {}
        defaults = self._defaults()
        parser = configparser.ConfigParser()

        for key in sorted(PlayerConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                parser["DEFAULT"][key] = _ini_value(value)

        theme = settings.get("theme") or defaults.theme
        parser[THEME_SECTION] = {
            key: _ini_value(value) for key, value in theme.model_dump().items()
        }

        try:
            self._write(parser)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _read_values(self) -> dict[str, Any]:
        section = self._parser["DEFAULT"]
        defaults = self._defaults()
        values: dict[str, Any] = {
            "store_dir": section.get("store_dir", defaults.store_dir),
            "store_name": section.get("store_name", defaults.store_name),
        }
        for key in ("store_version", "chunk_size"):
            values[key] = section.getint(key, getattr(defaults, key))
        for key in ("connect_timeout", "read_timeout", "download_timeout", "tick_interval"):
            values[key] = section.getfloat(key, getattr(defaults, key))
        for key in ("await_payload_write", "confirm_downloads"):
            values[key] = section.getboolean(key, getattr(defaults, key))

        if self._parser.has_section(THEME_SECTION):
            theme_section = self._parser[THEME_SECTION]
            values["theme"] = Theme(
                **{
                    key: theme_section[key]
                    for key in Theme.model_fields
                    if key in theme_section
                }
            )
        return values

    def _add_missing_keys(self) -> bool:
        """Fills in keys introduced since the file was written. Returns True if any."""
        defaults = self._defaults()
        section = self._parser["DEFAULT"]
        added = [key for key in sorted(PlayerConfig.get_ini_keys()) if key not in section]
        for key in added:
            section[key] = _ini_value(getattr(defaults, key))
            log.debug(f"Config: added missing key '{key}' = '{section[key]}'.")

        theme_missing = not self._parser.has_section(THEME_SECTION)
        if theme_missing:
            self._parser[THEME_SECTION] = {
                key: _ini_value(value) for key, value in defaults.theme.model_dump().items()
            }

        if not added and not theme_missing:
            return False
        try:
            self._write(self._parser)
        except OSError as e:
            log.error(f"Could not save the upgraded configuration file: {e}")
            return False
        return True
