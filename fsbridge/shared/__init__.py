"""
Shared utilities for fsbridge.
"""

from fsbridge.shared.gate import (
    GateLogger,
    GateErrorHandler,
    ConfigLoader,
    PathUtils,
    build_health_status,
)

__all__ = [
    "GateLogger",
    "GateErrorHandler",
    "ConfigLoader",
    "PathUtils",
    "build_health_status",
]
