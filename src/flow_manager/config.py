"""Configuration management for flow-manager using YAML files."""

from pathlib import Path
from typing import Any

import structlog
import yaml

from flow_manager.errors import ConfigError

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".flow-manager"


def _read(config_file: Path) -> dict[str, Any]:
    """Read a config.yaml, or return an empty mapping if there is none."""
    if not config_file.exists():
        logger.debug("No config file", config_file=str(config_file))
        return {}

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load config", config_file=str(config_file), error=str(e))
        raise ConfigError(f"Failed to load config from {config_file}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping")
    logger.debug("Config loaded", config_file=str(config_file), keys=list(config))
    return config


class Config:
    """Settings for the store, the default project and the layout.

    Local settings live in .flow-manager/config.yaml under the working
    directory, global ones in ~/.flow-manager/config.yaml. Reads consult the
    local file first.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: Read and write only the global file
            config_dir: Directory holding config.yaml, overriding the default location
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"

        self._config: dict[str, Any] = _read(self.config_file)

        # global values back up the local file
        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_config_file = Path.home() / CONFIG_DIR_NAME / "config.yaml"
            if global_config_file != self.config_file:
                try:
                    self._global_config = _read(global_config_file)
                except ConfigError as e:
                    logger.warning("Ignoring unreadable global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _save(self) -> None:
        """Write the settings back, creating the directory on first save."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ConfigError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Look a key up locally, then globally, returning default if neither has it."""
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        logger.debug("Config value not found", key=key)
        return default

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """Get a configuration value as an integer."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Config value {key}={value!r} is not an integer") from e

    def get_float(self, key: str, default: float) -> float:
        """Get a configuration value as a float."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Config value {key}={value!r} is not a number") from e

    def set(self, key: str, value: str) -> None:
        """Store a value in this scope's file."""
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        """Remove a key from this scope's file. Missing keys are ignored."""
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """Return every setting visible from this scope, local values winning."""
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()

        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


def get_config(use_global: bool = False) -> Config:
    """Config for the working directory, or the global one."""
    return Config(use_global=use_global)
