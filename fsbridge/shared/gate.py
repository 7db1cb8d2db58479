"""
Shared Gate utilities for fsbridge.

- GateLogger: loggers namespaced under ``fsbridge``
- GateErrorHandler: turning an expected failure into a logged fallback value
- build_health_status: the health dict reported by FileSystemGate
- ConfigLoader: the optional JSON settings file
- PathUtils: directory creation for files we write
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union


# =============================================================================
# GateLogger
# =============================================================================


class GateLogger:
    """
    Logger factory for the bridge.

    ``GateLogger.get("ReplyChannel.Transport")`` returns the
    ``fsbridge.ReplyChannel.Transport`` logger; the ``fsbridge`` logger gets a
    stream handler the first time any of them is requested.
    """

    ROOT = "fsbridge"

    _configured = False

    @classmethod
    def _ensure_configured(cls) -> None:
        if cls._configured:
            return

        root_logger = logging.getLogger(cls.ROOT)
        if not root_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
            root_logger.addHandler(handler)
            root_logger.setLevel(logging.INFO)

        cls._configured = True

    @classmethod
    def get(cls, component: str) -> logging.Logger:
        """Logger for one component, e.g. "FileSystemGate.File"."""
        cls._ensure_configured()
        return logging.getLogger(f"{cls.ROOT}.{component}")

    @classmethod
    def set_level(cls, level: Union[int, str]) -> None:
        """
        Set the level of every fsbridge logger.

        Accepts a logging constant or a level name in any case
        (``FSBRIDGE_LOG_LEVEL=debug``); unknown names fall back to INFO.
        """
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        cls._ensure_configured()
        logging.getLogger(cls.ROOT).setLevel(level)


# =============================================================================
# GateErrorHandler
# =============================================================================


class GateErrorHandler:
    """Used where a failure becomes a fallback value instead of propagating."""

    @staticmethod
    def handle(
        component: str,
        operation: str,
        exception: Exception,
        default_return: Any = None,
        log_level: int = logging.ERROR,
    ) -> Any:
        """
        Log ``exception`` against ``component`` and return ``default_return``.

        File attribute getters use this at DEBUG level so a missing file
        reads as empty metadata without noise.
        """
        GateLogger.get(component).log(log_level, f"{operation} failed: {exception}")
        return default_return


# =============================================================================
# Health
# =============================================================================


def build_health_status(
    gate_name: str,
    initialized: bool,
    dependencies: List[str],
    checks: Dict[str, bool],
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Healthy means initialized with every check passing."""
    return {
        "gate": gate_name,
        "healthy": initialized and all(checks.values()),
        "initialized": initialized,
        "dependencies": dependencies,
        "checks": checks,
        "details": details or {},
    }


# =============================================================================
# ConfigLoader
# =============================================================================


ConfigT = TypeVar("ConfigT")


class ConfigLoader:
    """Reads and writes the JSON settings file."""

    @staticmethod
    def load(
        path: Union[str, Path],
        model_class: Type[ConfigT],
        create_default: bool = True,
    ) -> Optional[ConfigT]:
        """
        Load a JSON file as ``dict`` or as a pydantic model.

        Args:
            path: Settings file
            model_class: ``dict`` or a class with model_validate()
            create_default: Return ``model_class()`` when the file is missing

        Returns:
            The loaded value, or None if the file is missing (without
            create_default), unreadable or of the wrong shape
        """
        path = Path(path)

        if not path.exists():
            return model_class() if create_default else None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            if model_class is dict:
                if not isinstance(data, dict):
                    raise ValueError("top-level JSON value is not an object")
                return data
            return model_class.model_validate(data)

        except (OSError, ValueError) as e:
            GateLogger.get("ConfigLoader").error(f"Failed to load config from {path}: {e}")
            return None

    @staticmethod
    def save(path: Union[str, Path], config: Any) -> bool:
        """
        Write ``config`` (a dict or pydantic model) as indented JSON.

        Returns:
            True if the file was written
        """
        path = Path(path)

        try:
            PathUtils.ensure_parent(path)

            if hasattr(config, "model_dump"):
                data = config.model_dump(mode="json")
            else:
                data = dict(config)

            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            return True

        except (OSError, TypeError, ValueError) as e:
            GateLogger.get("ConfigLoader").error(f"Failed to save config to {path}: {e}")
            return False


# =============================================================================
# PathUtils
# =============================================================================


class PathUtils:

    @staticmethod
    def ensure_parent(path: Union[str, Path]) -> Path:
        """Create the directory that will hold ``path``."""
        parent = Path(path).parent
        parent.mkdir(parents=True, exist_ok=True)
        return parent
