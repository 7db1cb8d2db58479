"""
fsbridge Configuration Manager.

Centralized configuration with:
- Schema-driven validation
- Environment variable fallback (.env loaded via python-dotenv)
- Persistent JSON storage
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from fsbridge.shared.gate import ConfigLoader, GateLogger
from fsbridge.Config.schema import (
    CONFIG_SCHEMA,
    BridgeSettings,
    ConfigCategory,
    ConfigField,
    ConfigType,
    get_schema_by_key,
)

_log = GateLogger.get("Config")

# Config file paths (relative to the working directory)
ENV_FILE = Path(".env")
CONFIG_JSON = Path("data") / "fsbridge.json"


class ConfigManager:
    """
    Manages fsbridge configuration.

    Priority order:
    1. Environment variables
    2. fsbridge.json
    3. Schema defaults
    """

    def __init__(self, config_path: Optional[Path] = None, env_file: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else CONFIG_JSON
        self.env_file = Path(env_file) if env_file else ENV_FILE
        self._cache: Dict[str, Any] = {}
        self._loaded = False
        self._load()

    def _load(self):
        """Load configuration from all sources."""
        load_dotenv(self.env_file)

        json_config = ConfigLoader.load(self.config_path, dict, create_default=True) or {}

        for field in CONFIG_SCHEMA:
            value = os.environ.get(field.env_var)

            if value is None and field.key in json_config:
                value = json_config[field.key]

            if value is None:
                value = field.default

            self._cache[field.key] = self._convert_type(value, field.config_type)

        self._loaded = True

    def _convert_type(self, value: Any, config_type: ConfigType) -> Any:
        """Convert value to appropriate type."""
        if value is None:
            return None

        try:
            if config_type == ConfigType.INTEGER:
                return int(value)
            elif config_type == ConfigType.FLOAT:
                return float(value)
            elif config_type == ConfigType.BOOLEAN:
                if isinstance(value, bool):
                    return value
                return str(value).lower() in ("true", "1", "yes", "on")
            elif config_type == ConfigType.LIST:
                if isinstance(value, list):
                    return value
                return [v.strip() for v in str(value).split(",") if v.strip()]
            else:
                return str(value) if value else None
        except (ValueError, TypeError):
            _log.warning(f"Could not convert {value!r} to {config_type.value}")
            return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        if not self._loaded:
            self._load()
        return self._cache.get(key, default)

    def set(self, key: str, value: Any, persist: bool = False) -> bool:
        """
        Set a configuration value.

        Args:
            key: Config key
            value: New value
            persist: Whether to save to fsbridge.json

        Returns:
            True if successful
        """
        field = get_schema_by_key(key)
        if not field:
            return False

        self._cache[key] = self._convert_type(value, field.config_type)

        if persist:
            return self.save()
        return True

    def save(self) -> bool:
        """Save non-default values to the JSON config file."""
        to_save = {}
        for field in CONFIG_SCHEMA:
            value = self._cache.get(field.key)
            if value is None or value == field.default:
                continue
            to_save[field.key] = value

        return ConfigLoader.save(self.config_path, to_save)

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return {field.key: self._cache.get(field.key) for field in CONFIG_SCHEMA}

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate configuration.

        Returns:
            (is_valid, list of error messages)
        """
        errors = []

        for field in CONFIG_SCHEMA:
            value = self._cache.get(field.key)

            if field.required and (value is None or value == ""):
                errors.append(f"Required config missing: {field.key}")
                continue

            if value and field.options and str(value).upper() not in field.options:
                errors.append(f"Invalid option for {field.key}: {value}")

        return len(errors) == 0, errors

    def to_settings(self) -> BridgeSettings:
        """Build the typed settings object."""
        return BridgeSettings(
            extension_command=self.get("FSBRIDGE_EXTENSION_COMMAND"),
            extension_args=self.get("FSBRIDGE_EXTENSION_ARGS") or [],
            request_timeout=self.get("FSBRIDGE_REQUEST_TIMEOUT"),
            sync_timeout=self.get("FSBRIDGE_SYNC_TIMEOUT"),
            stat_freshness_ms=self.get("FSBRIDGE_STAT_FRESHNESS_MS"),
            max_path_length=self.get("FSBRIDGE_MAX_PATH_LENGTH"),
            log_level=self.get("FSBRIDGE_LOG_LEVEL") or "INFO",
        )


# Global instance
_manager: Optional[ConfigManager] = None


def get_manager() -> ConfigManager:
    """Get or create the global ConfigManager."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def reload():
    """Reload configuration from files."""
    global _manager
    _manager = ConfigManager()


# Convenience functions
def get(key: str, default: Any = None) -> Any:
    """Get a config value."""
    return get_manager().get(key, default)


def get_settings() -> BridgeSettings:
    """Get the typed settings built from the current configuration."""
    return get_manager().to_settings()


__all__ = [
    "ConfigManager",
    "ConfigField",
    "ConfigType",
    "ConfigCategory",
    "BridgeSettings",
    "CONFIG_SCHEMA",
    "get_manager",
    "reload",
    "get",
    "get_settings",
]
