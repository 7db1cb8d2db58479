"""
FileSystemGate FileStream entity.

Stream I/O is modeled as blocking: every operation is a synchronous round
trip and errors are raised, not delivered to handlers.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Iterable, Optional, Union

from fsbridge.shared.gate import GateLogger
from fsbridge.ReplyChannel import BridgeReply, Transport

from .errors import FileSystemError, InvalidStateError, InvalidValuesError, TypeMismatchError
from .models import StreamDataType
from .security import check_count

_log = GateLogger.get("FileSystemGate.Stream")

CLOSED_DESCRIPTOR = -1


class FileStream:
    """An open stream identified by the native side's file descriptor."""

    def __init__(
        self,
        transport: Transport,
        file_descriptor: int,
        mode: Optional[str] = None,
        encoding: Optional[str] = None,
    ):
        self._transport = transport
        self.file_descriptor = file_descriptor if file_descriptor is not None else CLOSED_DESCRIPTOR
        self.mode = mode
        self.encoding = encoding
        self.eof = False
        self.position = 0
        self.bytes_available = 0

    def __repr__(self) -> str:
        return f"FileStream(fd={self.file_descriptor}, mode={self.mode!r})"

    def __enter__(self) -> "FileStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self.file_descriptor == CLOSED_DESCRIPTOR

    def close(self) -> None:
        """Close the stream; the handle is unusable afterwards."""
        if self.closed:
            return

        try:
            reply = self._transport.call("FileStreamClose", fileDescriptor=self.file_descriptor)
            if reply.is_error:
                _log.warning(
                    f"Closing stream {self.file_descriptor} reported error {reply.error_code}"
                )
        finally:
            self.file_descriptor = CLOSED_DESCRIPTOR

    # ==================== Reads ====================

    def read(self, char_count: int) -> str:
        """Read up to ``char_count`` characters."""
        reply = self._read(StreamDataType.DEFAULT, check_count(char_count, "char_count"))
        return reply.get("value") or ""

    def read_bytes(self, byte_count: int) -> bytes:
        """Read up to ``byte_count`` bytes."""
        reply = self._read(StreamDataType.BYTES, check_count(byte_count, "byte_count"))
        return bytes(reply.get("value") or [])

    def read_base64(self, byte_count: int) -> str:
        """Read up to ``byte_count`` bytes, base64 encoded."""
        reply = self._read(StreamDataType.BASE64, check_count(byte_count, "byte_count"))
        return reply.get("value") or ""

    def _read(self, data_type: StreamDataType, count: int) -> BridgeReply:
        return self._call("FileStreamRead", type=data_type.value, count=count)

    # ==================== Writes ====================

    def write(self, string_data: str) -> None:
        """Write text."""
        if not isinstance(string_data, str):
            raise TypeMismatchError(f"write expects str, got {type(string_data).__name__}")
        self._write(StreamDataType.DEFAULT, string_data)

    def write_bytes(self, byte_data: Union[bytes, bytearray, Iterable[int]]) -> None:
        """Write raw bytes (sent as a list of octets)."""
        if isinstance(byte_data, (str, int)):
            raise TypeMismatchError(f"write_bytes expects bytes, got {type(byte_data).__name__}")
        try:
            octets = list(bytes(byte_data))
        except (TypeError, ValueError) as e:
            raise TypeMismatchError(f"write_bytes expects bytes: {e}") from e
        self._write(StreamDataType.BYTES, octets)

    def write_base64(self, base64_data: str) -> None:
        """Write bytes given as base64 text."""
        if not isinstance(base64_data, str):
            raise TypeMismatchError(f"write_base64 expects str, got {type(base64_data).__name__}")
        try:
            base64.b64decode(base64_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidValuesError(f"Invalid base64 data: {e}") from e
        self._write(StreamDataType.BASE64, base64_data)

    def _write(self, data_type: StreamDataType, data: Any) -> None:
        self._call("FileStreamWrite", type=data_type.value, data=data)

    # ==================== Helpers ====================

    def _call(self, command: str, **fields: Any) -> BridgeReply:
        if self.closed:
            raise InvalidStateError("Stream is closed")

        reply = self._transport.call(command, fileDescriptor=self.file_descriptor, **fields)
        if reply.is_error:
            raise FileSystemError.from_code(reply.error_code, f"{command} failed")

        self._update_position(reply)
        return reply

    def _update_position(self, reply: BridgeReply) -> None:
        """Track stream state when the native side reports it."""
        eof = reply.get("eof")
        if eof is not None:
            self.eof = bool(eof)
        position = reply.get("position")
        if position is not None:
            self.position = position
        available = reply.get("bytesAvailable")
        if available is not None:
            self.bytes_available = available


__all__ = ["CLOSED_DESCRIPTOR", "FileStream"]
