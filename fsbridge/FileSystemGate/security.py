"""
FileSystemGate security module.

Local checks run before anything is sent to the native extension:
handler and argument kinds, traversal markers, path containment, plus the
lexical path helpers the entities are built on.

The containment check is lexical and best-effort; the native extension
remains responsible for real access control.
"""

from typing import Any, Optional, Tuple

from .errors import InvalidValuesError, TypeMismatchError
from .models import FileFilter, StreamMode

TRAVERSAL_MARKER = "./"
_TRAVERSAL_SEGMENTS = (".", "..")
_STREAM_MODES = tuple(mode.value for mode in StreamMode)


class PathSecurityError(InvalidValuesError):
    """Raised when a path contains a traversal marker."""
    pass


# ==================== Argument kinds ====================


def check_handler(value: Any, name: str, required: bool = False) -> None:
    """
    Validate a success/error handler argument.

    Required handlers must be callable; optional ones may also be None.

    Raises:
        TypeMismatchError: On any other value
    """
    if value is None and not required:
        return
    if not callable(value):
        raise TypeMismatchError(f"{name} must be callable, got {type(value).__name__}")


def check_filter(value: Any) -> None:
    """Raise TypeMismatchError unless value is None or a FileFilter."""
    if value is not None and not isinstance(value, FileFilter):
        raise TypeMismatchError(f"filter must be a FileFilter, got {type(value).__name__}")


def check_mode(mode: Any, required: bool = True) -> Optional[str]:
    """
    Validate a stream/resolve mode.

    Returns:
        The mode as its wire string (None if omitted and optional)
    """
    if mode is None and not required:
        return None
    if isinstance(mode, StreamMode):
        return mode.value
    if not isinstance(mode, str) or mode not in _STREAM_MODES:
        raise TypeMismatchError(f"mode must be one of {', '.join(_STREAM_MODES)}, got {mode!r}")
    return mode


def check_count(value: Any, name: str = "count") -> int:
    """
    Validate a stream read count.

    Raises:
        InvalidValuesError: Unless value is a non-negative int
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidValuesError(f"{name} must be a non-negative integer, got {value!r}")
    return value


# ==================== Path checks ====================


def has_traversal_marker(path: str) -> bool:
    """True if path contains "./" or a "." / ".." segment."""
    if TRAVERSAL_MARKER in path:
        return True
    return any(segment in _TRAVERSAL_SEGMENTS for segment in path.split("/"))


def check_relative_path(path: Any) -> str:
    """
    Validate a path that will be resolved against an entity.

    Raises:
        TypeMismatchError: If path is not a string
        PathSecurityError: If path contains a traversal marker
    """
    if not isinstance(path, str):
        raise TypeMismatchError(f"path must be a string, got {type(path).__name__}")
    if has_traversal_marker(path):
        raise PathSecurityError(f"Path traversal is not allowed: {path}")
    return path


def is_contained(path: str, root: str) -> bool:
    """
    Lexical containment: path equals root or lies under it.

    "/a/bc" is not contained in "/a/b".
    """
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)


def validate_target_path(target: Any, root: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a copy/move/delete target against the acting entity's path.

    Returns:
        Tuple of (is_valid, error_kind) where error_kind is
        "not_found" or "invalid_values"
    """
    if not isinstance(target, str):
        return False, "not_found"
    if has_traversal_marker(target):
        return False, "invalid_values"
    if not is_contained(target, root):
        return False, "not_found"
    return True, None


# ==================== Path helpers ====================


def parent_path(full_path: str) -> Optional[str]:
    """
    Path of the parent entity, or None at the top.

    "documents/a.txt" -> "documents", "documents" -> None,
    "/opt/a" -> "/opt", "/opt" -> "/", "/" -> None.
    """
    index = full_path.rfind("/")
    if index < 0 or full_path == "/":
        return None
    if index == 0:
        return "/"
    return full_path[:index]


def dir_path(full_path: str) -> str:
    """Everything up to and including the last "/" (the whole path if none)."""
    index = full_path.rfind("/")
    if index < 0:
        return full_path
    return full_path[:index + 1]


def base_name(full_path: str) -> str:
    """Everything after the last "/" ("" if none)."""
    index = full_path.rfind("/")
    if index < 0:
        return ""
    return full_path[index + 1:]
