"""
FileSystemGate errors.

Error codes are owned by the native extension; they are opaque small
integers here, mapped onto exception classes for the kinds this binding
raises or reports itself.
"""

from enum import IntEnum
from typing import Dict, Optional, Type


class ErrorCode(IntEnum):
    """WebAPI style error codes."""
    UNKNOWN_ERR = 0
    NOT_FOUND_ERR = 8
    NOT_SUPPORTED_ERR = 9
    INVALID_STATE_ERR = 11
    INVALID_MODIFICATION_ERR = 13
    INVALID_ACCESS_ERR = 15
    TYPE_MISMATCH_ERR = 17
    SECURITY_ERR = 18
    ABORT_ERR = 20
    TIMEOUT_ERR = 23
    INVALID_VALUES_ERR = 101
    IO_ERR = 102
    PERMISSION_DENIED_ERR = 103
    SERVICE_NOT_AVAILABLE_ERR = 104


class FileSystemError(Exception):
    """Error value delivered to error handlers or raised on sync paths."""

    default_code = ErrorCode.UNKNOWN_ERR

    def __init__(self, message: str = "", code: Optional[int] = None):
        self.code = int(self.default_code if code is None else code)
        self.message = message or self.name
        super().__init__(self.message)

    @property
    def name(self) -> str:
        """Symbolic name of the code, UNKNOWN_ERR for codes outside the table."""
        try:
            return ErrorCode(self.code).name
        except ValueError:
            return ErrorCode.UNKNOWN_ERR.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"

    @classmethod
    def from_code(cls, code: Optional[int], message: str = "") -> "FileSystemError":
        """Wrap a collaborator error code into the matching error class."""
        if code is None:
            code = ErrorCode.UNKNOWN_ERR
        error_class = _ERRORS_BY_CODE.get(int(code), FileSystemError)
        return error_class(message, code=code)


class NotFoundError(FileSystemError):
    default_code = ErrorCode.NOT_FOUND_ERR


class TypeMismatchError(FileSystemError, TypeError):
    """An argument has the wrong kind; never reaches the channel."""
    default_code = ErrorCode.TYPE_MISMATCH_ERR


class InvalidValuesError(FileSystemError, ValueError):
    default_code = ErrorCode.INVALID_VALUES_ERR


class InvalidStateError(FileSystemError):
    default_code = ErrorCode.INVALID_STATE_ERR


class FileIOError(FileSystemError):
    default_code = ErrorCode.IO_ERR


class RequestTimeoutError(FileSystemError):
    """The native extension never answered."""
    default_code = ErrorCode.TIMEOUT_ERR


_ERRORS_BY_CODE: Dict[int, Type[FileSystemError]] = {
    ErrorCode.NOT_FOUND_ERR: NotFoundError,
    ErrorCode.TYPE_MISMATCH_ERR: TypeMismatchError,
    ErrorCode.INVALID_VALUES_ERR: InvalidValuesError,
    ErrorCode.INVALID_STATE_ERR: InvalidStateError,
    ErrorCode.IO_ERR: FileIOError,
    ErrorCode.TIMEOUT_ERR: RequestTimeoutError,
}


__all__ = [
    "ErrorCode",
    "FileSystemError",
    "NotFoundError",
    "TypeMismatchError",
    "InvalidValuesError",
    "InvalidStateError",
    "FileIOError",
    "RequestTimeoutError",
]
