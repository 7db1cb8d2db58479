"""
Configuration schema for fsbridge.

Defines all configurable options with metadata for validation
and documentation, plus the typed settings object handed to gates.
"""

from enum import Enum
from typing import Any, List, Optional
from dataclasses import dataclass

from pydantic import BaseModel, Field


class ConfigType(Enum):
    """Configuration value types."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    LIST = "list"          # Comma-separated values


class ConfigCategory(Enum):
    """Configuration categories for grouping."""
    CHANNEL = "channel"
    ENTITIES = "entities"
    LOGGING = "logging"


@dataclass
class ConfigField:
    """Definition of a configuration field."""
    key: str
    description: str
    config_type: ConfigType
    category: ConfigCategory
    required: bool = False
    default: Any = None
    env_var: str = None          # Override env var name (defaults to key)
    options: List[str] = None    # For enumerated types

    def __post_init__(self):
        if self.env_var is None:
            self.env_var = self.key


# ==================== Schema Definition ====================

CONFIG_SCHEMA: List[ConfigField] = [
    # === Channel ===
    ConfigField(
        key="FSBRIDGE_EXTENSION_COMMAND",
        description="Executable of the native filesystem extension (stdio channel)",
        config_type=ConfigType.STRING,
        category=ConfigCategory.CHANNEL,
    ),
    ConfigField(
        key="FSBRIDGE_EXTENSION_ARGS",
        description="Arguments passed to the native extension",
        config_type=ConfigType.LIST,
        category=ConfigCategory.CHANNEL,
        default=[],
    ),
    ConfigField(
        key="FSBRIDGE_REQUEST_TIMEOUT",
        description="Seconds before an unanswered async request fails with TIMEOUT_ERR (0 disables)",
        config_type=ConfigType.FLOAT,
        category=ConfigCategory.CHANNEL,
        default=30.0,
    ),
    ConfigField(
        key="FSBRIDGE_SYNC_TIMEOUT",
        description="Seconds a synchronous call waits for the extension's reply",
        config_type=ConfigType.FLOAT,
        category=ConfigCategory.CHANNEL,
        default=10.0,
    ),

    # === Entities ===
    ConfigField(
        key="FSBRIDGE_STAT_FRESHNESS_MS",
        description="Milliseconds cached file metadata is reused before a new stat round trip",
        config_type=ConfigType.FLOAT,
        category=ConfigCategory.ENTITIES,
        default=5.0,
    ),
    ConfigField(
        key="FSBRIDGE_MAX_PATH_LENGTH",
        description="Max path length reported when the extension cannot answer",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.ENTITIES,
        default=4096,
    ),

    # === Logging ===
    ConfigField(
        key="FSBRIDGE_LOG_LEVEL",
        description="Log level for the fsbridge logger tree",
        config_type=ConfigType.STRING,
        category=ConfigCategory.LOGGING,
        default="INFO",
        options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    ),
]


def get_schema_by_key(key: str) -> Optional[ConfigField]:
    """Get schema field by key."""
    for field in CONFIG_SCHEMA:
        if field.key == key:
            return field
    return None


def get_schema_by_category(category: ConfigCategory) -> List[ConfigField]:
    """Get all fields in a category."""
    return [f for f in CONFIG_SCHEMA if f.category == category]


class BridgeSettings(BaseModel):
    """Typed view of the configuration consumed by the gates."""

    extension_command: Optional[str] = Field(default=None)
    extension_args: List[str] = Field(default_factory=list)
    request_timeout: Optional[float] = Field(default=30.0, ge=0)
    sync_timeout: float = Field(default=10.0, gt=0)
    stat_freshness_ms: float = Field(default=5.0, ge=0)
    max_path_length: int = Field(default=4096, ge=1)
    log_level: str = Field(default="INFO")

    @property
    def stat_freshness(self) -> float:
        """Freshness window in seconds."""
        return self.stat_freshness_ms / 1000.0

    @property
    def effective_request_timeout(self) -> Optional[float]:
        """Request timeout with 0 meaning "never"."""
        return self.request_timeout or None
