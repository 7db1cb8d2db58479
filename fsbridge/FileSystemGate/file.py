"""
FileSystemGate File entity.

A File is identified by its full virtual path. Operations are marshaled to
the native extension; metadata is kept in a short-lived StatCache.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from fsbridge.shared.gate import GateErrorHandler, GateLogger
from fsbridge.ReplyChannel import BridgeReply, ChannelError, PendingRequest, Transport

from .errors import FileIOError, FileSystemError, InvalidValuesError, NotFoundError
from .models import FileFilter, FileStat, StreamMode
from .security import (
    base_name,
    check_filter,
    check_handler,
    check_mode,
    check_relative_path,
    dir_path,
    has_traversal_marker,
    parent_path,
    validate_target_path,
)
from .stream import FileStream

_log = GateLogger.get("FileSystemGate.File")

# Seconds cached metadata stays valid
DEFAULT_STAT_FRESHNESS = 0.005

Handler = Optional[Callable[..., Any]]


# ==================== Reply plumbing ====================


def report_error(onerror: Handler, error: FileSystemError, operation: str) -> None:
    """Deliver ``error`` to ``onerror``, or drop it when no handler was given."""
    if onerror is not None:
        onerror(error)
    else:
        _log.debug(f"{operation} failed without error handler: {error!r}")


def reply_handler(
    onsuccess: Handler,
    onerror: Handler,
    convert: Callable[[BridgeReply], Tuple[Any, ...]],
    operation: str,
) -> Callable[[BridgeReply], None]:
    """
    Build the correlator callback for an async operation.

    Error replies go to ``onerror``; successful ones are converted and
    passed to ``onsuccess``.
    """
    def callback(reply: BridgeReply) -> None:
        if reply.is_error:
            report_error(
                onerror,
                FileSystemError.from_code(reply.error_code, f"{operation} failed"),
                operation,
            )
        elif onsuccess is not None:
            onsuccess(*convert(reply))

    return callback


def _no_result(reply: BridgeReply) -> Tuple[Any, ...]:
    return ()


# ==================== Metadata cache ====================


class StatCache:
    """
    Last fetched FileStat plus the time it was fetched.

    ``cached`` never performs I/O; ``get()`` reuses a value younger than the
    freshness window; ``refresh()`` always round-trips. Errors are not cached.
    """

    def __init__(
        self,
        fetch: Callable[[], FileStat],
        freshness: float = DEFAULT_STAT_FRESHNESS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self.freshness = freshness
        self._clock = clock
        self._value: Optional[FileStat] = None
        self._fetched_at: Optional[float] = None

    @property
    def cached(self) -> Optional[FileStat]:
        """Last fetched value, however old."""
        return self._value

    @property
    def is_fresh(self) -> bool:
        if self._value is None or self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) <= self.freshness

    def get(self) -> FileStat:
        if self.is_fresh:
            return self._value
        return self.refresh()

    def refresh(self) -> FileStat:
        value = self._fetch()
        self._value = value
        self._fetched_at = self._clock()
        return value

    def invalidate(self) -> None:
        self._value = None
        self._fetched_at = None


# ==================== File ====================


class File:
    """A file or directory of the virtual filesystem."""

    def __init__(
        self,
        transport: Transport,
        full_path: str,
        freshness: float = DEFAULT_STAT_FRESHNESS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._full_path = full_path
        self._freshness = freshness
        self._clock = clock
        self._stat = StatCache(self._fetch_stat, freshness=freshness, clock=clock)

    def __repr__(self) -> str:
        return f"File({self._full_path!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, File):
            return NotImplemented
        return self._full_path == other._full_path

    def __hash__(self) -> int:
        return hash(self._full_path)

    # ==================== Path derived ====================

    @property
    def full_path(self) -> str:
        return self._full_path

    @property
    def path(self) -> str:
        """Directory part of the full path, trailing "/" included."""
        return dir_path(self._full_path)

    @property
    def name(self) -> str:
        return base_name(self._full_path)

    @property
    def parent(self) -> Optional["File"]:
        """Recomputed from the path on every access."""
        path = parent_path(self._full_path)
        return self._spawn(path) if path is not None else None

    def _spawn(self, full_path: str) -> "File":
        return File(self._transport, full_path, freshness=self._freshness, clock=self._clock)

    # ==================== Metadata ====================

    def _fetch_stat(self) -> FileStat:
        reply = self._transport.call("FileStat", fullPath=self._full_path)
        if reply.is_error:
            raise FileSystemError.from_code(reply.error_code, f"stat failed for {self._full_path}")
        return FileStat.from_dict(reply.get("value") or {})

    @property
    def cached_stat(self) -> Optional[FileStat]:
        """Last fetched metadata without a round trip (may be None or stale)."""
        return self._stat.cached

    def stat(self) -> FileStat:
        """
        Current metadata, reusing a value fetched within the freshness window.

        Raises:
            FileSystemError: If the native side reports an error
        """
        return self._stat.get()

    def refresh(self) -> FileStat:
        """Fetch metadata now, ignoring the cache."""
        return self._stat.refresh()

    def _safe_stat(self, attribute: str) -> Optional[FileStat]:
        try:
            return self.stat()
        except (FileSystemError, ChannelError) as e:
            return GateErrorHandler.handle(
                "FileSystemGate.File",
                f"{attribute} of {self._full_path}",
                e,
                default_return=None,
                log_level=logging.DEBUG,
            )

    @property
    def is_file(self) -> bool:
        status = self._safe_stat("is_file")
        return status.is_file if status else False

    @property
    def is_directory(self) -> bool:
        status = self._safe_stat("is_directory")
        return status.is_directory if status else False

    @property
    def read_only(self) -> bool:
        status = self._safe_stat("read_only")
        return status.read_only if status else True

    @property
    def created(self) -> Optional[datetime]:
        status = self._safe_stat("created")
        return status.created_at if status else None

    @property
    def modified(self) -> Optional[datetime]:
        status = self._safe_stat("modified")
        return status.modified_at if status else None

    @property
    def file_size(self) -> int:
        status = self._safe_stat("file_size")
        if status is None or status.is_directory:
            return 0
        return status.size

    @property
    def length(self) -> int:
        """1 for files, the entry count the native side reports otherwise."""
        status = self._safe_stat("length")
        if status is None:
            return 0
        if status.is_file:
            return 1
        return status.length or 0

    def to_uri(self) -> str:
        """URI of the file, "" if the native side cannot produce one."""
        reply = self._transport.call("FileGetURI", fullPath=self._full_path)
        if reply.is_error:
            return ""
        return reply.get("value") or ""

    # ==================== Async operations ====================

    def list_files(
        self,
        onsuccess: Callable[[List["File"]], Any],
        onerror: Handler = None,
        filter: Optional[FileFilter] = None,
    ) -> PendingRequest:
        """List directory entries; ``onsuccess`` gets Files in reply order."""
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")
        check_filter(filter)

        def convert(reply: BridgeReply) -> Tuple[Any, ...]:
            return ([self._spawn(path) for path in reply.get("value") or []],)

        return self._transport.post(
            "FileListFiles",
            reply_handler(onsuccess, onerror, convert, "listFiles"),
            fullPath=self._full_path,
            filter=filter.to_wire() if filter is not None else "",
        )

    def open_stream(
        self,
        mode: Any,
        onsuccess: Callable[[FileStream], Any],
        onerror: Handler = None,
        encoding: Optional[str] = None,
    ) -> PendingRequest:
        """Open a stream on this file."""
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")
        wire_mode = check_mode(mode)

        def convert(reply: BridgeReply) -> Tuple[Any, ...]:
            stream = FileStream(
                self._transport,
                reply.get("fileDescriptor"),
                mode=wire_mode,
                encoding=encoding,
            )
            return (stream,)

        return self._transport.post(
            "FileOpenStream",
            reply_handler(onsuccess, onerror, convert, "openStream"),
            fullPath=self._full_path,
            mode=wire_mode,
            encoding=encoding,
        )

    def read_as_text(
        self,
        onsuccess: Callable[[str], Any],
        onerror: Handler = None,
        encoding: Optional[str] = None,
    ) -> Optional[PendingRequest]:
        """Read the whole file through a temporary read stream."""
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")

        try:
            status = self.stat()
        except FileSystemError as e:
            report_error(onerror, e, "readAsText")
            return None
        if status.is_directory:
            report_error(onerror, FileIOError(f"{self._full_path} is a directory"), "readAsText")
            return None
        size = status.size

        def opened(stream: FileStream) -> None:
            try:
                text = stream.read(size)
            except FileSystemError as e:
                report_error(onerror, e, "readAsText")
                return
            finally:
                stream.close()
            onsuccess(text)

        return self.open_stream(StreamMode.READ, opened, onerror, encoding)

    def copy_to(
        self,
        origin_file_path: Any,
        destination_file_path: Any,
        overwrite: bool = False,
        onsuccess: Handler = None,
        onerror: Handler = None,
    ) -> Optional[PendingRequest]:
        """Copy ``origin_file_path`` (under this entity) to a destination."""
        return self._transfer(
            "FileCopyTo", "copyTo",
            origin_file_path, destination_file_path, overwrite, onsuccess, onerror,
        )

    def move_to(
        self,
        origin_file_path: Any,
        destination_file_path: Any,
        overwrite: bool = False,
        onsuccess: Handler = None,
        onerror: Handler = None,
    ) -> Optional[PendingRequest]:
        """Move ``origin_file_path`` (under this entity) to a destination."""
        return self._transfer(
            "FileMoveTo", "moveTo",
            origin_file_path, destination_file_path, overwrite, onsuccess, onerror,
        )

    def _transfer(
        self,
        command: str,
        operation: str,
        origin: Any,
        destination: Any,
        overwrite: bool,
        onsuccess: Handler,
        onerror: Handler,
    ) -> Optional[PendingRequest]:
        check_handler(onsuccess, "onsuccess")
        check_handler(onerror, "onerror")

        if not isinstance(destination, str):
            report_error(onerror, NotFoundError(f"{operation}: destination must be a path"), operation)
            return None
        if has_traversal_marker(destination):
            report_error(onerror, InvalidValuesError(f"{operation}: traversal in {destination}"), operation)
            return None
        if not self._check_target(origin, operation, onerror):
            return None

        return self._transport.post(
            command,
            reply_handler(self._after_change(onsuccess), onerror, _no_result, operation),
            originFilePath=origin,
            destinationFilePath=destination,
            overwrite=bool(overwrite),
        )

    def delete_directory(
        self,
        directory_path: Any,
        recursive: bool = False,
        onsuccess: Handler = None,
        onerror: Handler = None,
    ) -> Optional[PendingRequest]:
        """Delete a directory under this entity."""
        check_handler(onsuccess, "onsuccess")
        check_handler(onerror, "onerror")
        if not self._check_target(directory_path, "deleteDirectory", onerror):
            return None

        return self._transport.post(
            "FileDeleteDirectory",
            reply_handler(self._after_change(onsuccess), onerror, _no_result, "deleteDirectory"),
            directoryPath=directory_path,
            recursive=bool(recursive),
        )

    def delete_file(
        self,
        file_path: Any,
        onsuccess: Handler = None,
        onerror: Handler = None,
    ) -> Optional[PendingRequest]:
        """Delete a file under this entity."""
        check_handler(onsuccess, "onsuccess")
        check_handler(onerror, "onerror")
        if not self._check_target(file_path, "deleteFile", onerror):
            return None

        return self._transport.post(
            "FileDeleteFile",
            reply_handler(self._after_change(onsuccess), onerror, _no_result, "deleteFile"),
            filePath=file_path,
        )

    def _check_target(self, target: Any, operation: str, onerror: Handler) -> bool:
        is_valid, kind = validate_target_path(target, self._full_path)
        if is_valid:
            return True

        if kind == "invalid_values":
            error = InvalidValuesError(f"{operation}: traversal in {target}")
        else:
            error = NotFoundError(f"{operation}: {target!r} is not under {self._full_path}")
        report_error(onerror, error, operation)
        return False

    def _after_change(self, onsuccess: Handler) -> Callable[[], None]:
        """Drop cached metadata once a mutation succeeded, then notify."""
        def done() -> None:
            self._stat.invalidate()
            if onsuccess is not None:
                onsuccess()
        return done

    # ==================== Sync operations ====================

    def create_directory(self, relative_dir_path: Any) -> "File":
        """Create a directory below this one and return it."""
        check_relative_path(relative_dir_path)
        return self._sync_spawn(
            "FileCreateDirectory", relativeDirPath=relative_dir_path
        )

    def create_file(self, relative_file_path: Any) -> "File":
        """Create an empty file below this directory and return it."""
        check_relative_path(relative_file_path)
        return self._sync_spawn(
            "FileCreateFile", relativeFilePath=relative_file_path
        )

    def resolve(self, relative_file_path: Any) -> "File":
        """Resolve an existing entry below this directory."""
        check_relative_path(relative_file_path)
        return self._sync_spawn(
            "FileResolve", relativeFilePath=relative_file_path
        )

    def _sync_spawn(self, command: str, **fields: Any) -> "File":
        reply = self._transport.call(command, fullPath=self._full_path, **fields)
        if reply.is_error:
            raise FileSystemError.from_code(reply.error_code, f"{command} failed")
        if command != "FileResolve":
            self._stat.invalidate()
        return self._spawn(reply.get("value"))


__all__ = [
    "DEFAULT_STAT_FRESHNESS",
    "File",
    "StatCache",
    "reply_handler",
    "report_error",
]
