"""
FileSystemGate Manager.

Entry point of the virtual filesystem: path resolution, storage
enumeration and storage state listeners.
"""

from __future__ import annotations

import itertools
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from fsbridge.shared.gate import GateLogger
from fsbridge.Config.schema import BridgeSettings
from fsbridge.ReplyChannel import BridgeReply, PendingRequest, Transport

from .errors import FileSystemError, InvalidValuesError, NotFoundError, TypeMismatchError
from .file import DEFAULT_STAT_FRESHNESS, File, Handler, report_error, reply_handler
from .models import FileSystemStorage
from .security import check_handler, check_mode, has_traversal_marker

_log = GateLogger.get("FileSystemGate.Manager")

DEFAULT_MAX_PATH_LENGTH = 4096

# Notification sent by the native side when a storage is mounted/removed
STORAGE_STATE_CHANGED = "StorageStateChanged"


class FileSystemManager:
    """
    Manager of the virtual filesystem.

    Handles:
    - Resolving virtual locations into File entities
    - Storage lookup and enumeration
    - Storage state change listeners
    """

    def __init__(
        self,
        transport: Transport,
        max_path_length: int = DEFAULT_MAX_PATH_LENGTH,
        stat_freshness: float = DEFAULT_STAT_FRESHNESS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize manager.

        Args:
            transport: Transport attached to the native extension
            max_path_length: Value reported when the extension cannot answer
            stat_freshness: Seconds File metadata is cached
            clock: Monotonic clock used by metadata caches
        """
        self._transport = transport
        self.default_max_path_length = max_path_length
        self.stat_freshness = stat_freshness
        self._clock = clock
        self._watch_ids = itertools.count(1)
        self._storage_listeners: Dict[int, Tuple[Callable[..., Any], Handler]] = {}

    @classmethod
    def from_settings(cls, transport: Transport, settings: BridgeSettings) -> "FileSystemManager":
        """Create a manager configured from BridgeSettings."""
        return cls(
            transport,
            max_path_length=settings.max_path_length,
            stat_freshness=settings.stat_freshness,
        )

    @property
    def transport(self) -> Transport:
        return self._transport

    def file(self, full_path: str) -> File:
        """File entity for a known full path (no round trip)."""
        return File(self._transport, full_path, freshness=self.stat_freshness, clock=self._clock)

    def get_max_path_length(self) -> int:
        """Maximum path length supported by the native side."""
        reply = self._transport.call("FileSystemManagerGetMaxPathLength")
        if reply.is_error:
            return self.default_max_path_length
        value = reply.get("value")
        return value if isinstance(value, int) else self.default_max_path_length

    def resolve(
        self,
        location: Any,
        onsuccess: Callable[[File], Any],
        onerror: Handler = None,
        mode: Optional[str] = None,
    ) -> Optional[PendingRequest]:
        """
        Resolve a virtual location (e.g. "documents/notes.txt").

        Args:
            location: Virtual path
            onsuccess: Receives the resolved File
            onerror: Receives a FileSystemError
            mode: Access mode (r, rw, w, a)

        Returns:
            PendingRequest, or None when rejected locally
        """
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")
        wire_mode = check_mode(mode, required=False)

        if not isinstance(location, str):
            raise TypeMismatchError(f"location must be a string, got {type(location).__name__}")
        if has_traversal_marker(location):
            report_error(onerror, InvalidValuesError(f"Path traversal is not allowed: {location}"), "resolve")
            return None

        def convert(reply: BridgeReply) -> Tuple[Any, ...]:
            return (self.file(reply.get("fullPath") or ""),)

        return self._transport.post(
            "FileSystemManagerResolve",
            reply_handler(onsuccess, onerror, convert, "resolve"),
            location=location,
            mode=wire_mode,
        )

    def get_storage(
        self,
        label: Any,
        onsuccess: Callable[[FileSystemStorage], Any],
        onerror: Handler = None,
    ) -> PendingRequest:
        """Look up a storage by label."""
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")
        if not isinstance(label, str):
            raise TypeMismatchError(f"label must be a string, got {type(label).__name__}")

        def convert(reply: BridgeReply) -> Tuple[Any, ...]:
            return (FileSystemStorage.from_dict(reply.payload),)

        return self._transport.post(
            "FileSystemManagerGetStorage",
            reply_handler(onsuccess, onerror, convert, "getStorage"),
            label=label,
        )

    def list_storages(
        self,
        onsuccess: Callable[[List[FileSystemStorage]], Any],
        onerror: Handler = None,
    ) -> PendingRequest:
        """List every storage known to the native side."""
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")

        def convert(reply: BridgeReply) -> Tuple[Any, ...]:
            storages = [
                FileSystemStorage.from_dict(item)
                for item in reply.get("storages") or []
                if isinstance(item, dict)
            ]
            return (storages,)

        return self._transport.post(
            "FileSystemManagerListStorages",
            reply_handler(onsuccess, onerror, convert, "listStorages"),
        )

    # ==================== Storage listeners ====================

    def add_storage_state_change_listener(
        self,
        onsuccess: Callable[[FileSystemStorage], Any],
        onerror: Handler = None,
    ) -> int:
        """
        Register a listener for storage state changes.

        Returns:
            Watch id for remove_storage_state_change_listener()
        """
        check_handler(onsuccess, "onsuccess", required=True)
        check_handler(onerror, "onerror")

        if not self._storage_listeners:
            self._transport.add_notification_handler(
                STORAGE_STATE_CHANGED, self._on_storage_state_changed
            )

        watch_id = next(self._watch_ids)
        self._storage_listeners[watch_id] = (onsuccess, onerror)
        _log.debug(f"Added storage listener {watch_id}")
        return watch_id

    def remove_storage_state_change_listener(self, watch_id: int) -> None:
        """
        Unregister a storage listener.

        Raises:
            NotFoundError: If watch_id is unknown
        """
        if self._storage_listeners.pop(watch_id, None) is None:
            raise NotFoundError(f"No storage listener with id {watch_id}")

        if not self._storage_listeners:
            self._transport.remove_notification_handler(
                STORAGE_STATE_CHANGED, self._on_storage_state_changed
            )
        _log.debug(f"Removed storage listener {watch_id}")

    def _on_storage_state_changed(self, message: BridgeReply) -> None:
        for onsuccess, onerror in list(self._storage_listeners.values()):
            if message.is_error:
                report_error(
                    onerror,
                    FileSystemError.from_code(message.error_code, "storage state change"),
                    "storageStateChanged",
                )
            else:
                onsuccess(FileSystemStorage.from_dict(message.payload))

    def close(self) -> None:
        """Drop every storage listener."""
        if self._storage_listeners:
            self._storage_listeners.clear()
            self._transport.remove_notification_handler(
                STORAGE_STATE_CHANGED, self._on_storage_state_changed
            )


__all__ = [
    "DEFAULT_MAX_PATH_LENGTH",
    "STORAGE_STATE_CHANGED",
    "FileSystemManager",
]
