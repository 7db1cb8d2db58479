"""
FileSystemGate - Virtual filesystem API backed by a native extension.

Provides:
- Path resolution into File entities
- Storage lookup, enumeration and state change listeners
- Directory listing, copy/move/delete, stream I/O
- Local validation (handler kinds, traversal markers, path containment)

Usage:
    from fsbridge import FileSystemGate

    # Attach to a host channel (or: await FileSystemGate.connect())
    FileSystemGate.initialize(channel)

    # Resolve a location
    FileSystemGate.resolve("documents", on_dir, on_error, "rw")

    # List a directory
    directory.list_files(on_files, on_error)

    # Read a file
    file.open_stream("r", lambda stream: print(stream.read(64)))
"""

from typing import Any, Callable, Dict, List, Optional

from fsbridge import Config
from fsbridge.shared.gate import GateLogger, build_health_status
from fsbridge.Config.schema import BridgeSettings
from fsbridge.ReplyChannel import HostChannel, PendingRequest, StdioChannel, Transport
from fsbridge.ReplyChannel.correlator import Scheduler

from .errors import (
    ErrorCode,
    FileSystemError,
    FileIOError,
    InvalidStateError,
    InvalidValuesError,
    NotFoundError,
    RequestTimeoutError,
    TypeMismatchError,
)
from .models import (
    FileFilter,
    FileStat,
    FileSystemStorage,
    StorageState,
    StorageType,
    StreamMode,
)
from .security import PathSecurityError
from .file import File, StatCache
from .stream import FileStream
from .manager import FileSystemManager

# Logger for this gate
_log = GateLogger.get("FileSystemGate")

# Module-level state
_transport: Optional[Transport] = None
_manager: Optional[FileSystemManager] = None
_channel: Optional[StdioChannel] = None
_settings: Optional[BridgeSettings] = None
_initialized: bool = False


class FileSystemGate:
    """
    Main interface for the virtual filesystem.

    All methods are class methods for easy access throughout the application.
    """

    @classmethod
    def initialize(
        cls,
        channel: HostChannel,
        settings: Optional[BridgeSettings] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> bool:
        """
        Attach the gate to a host channel.

        Args:
            channel: Host channel to the native extension
            settings: Settings (default: loaded from Config)
            scheduler: Timer factory for request timeouts

        Returns:
            True if initialization successful
        """
        global _transport, _manager, _settings, _initialized

        if _initialized:
            _log.warning("Already initialized")
            return True

        try:
            _settings = settings or Config.get_settings()
            GateLogger.set_level(_settings.log_level)

            _transport = Transport(
                channel,
                request_timeout=_settings.effective_request_timeout,
                scheduler=scheduler,
            )
            _manager = FileSystemManager.from_settings(_transport, _settings)

            _initialized = True
            _log.info("Initialized successfully")
            return True

        except Exception as e:
            _log.error(f"Initialization failed: {e}")
            _transport = None
            _manager = None
            _settings = None
            return False

    @classmethod
    async def connect(cls, settings: Optional[BridgeSettings] = None) -> bool:
        """
        Start the configured native extension and attach to it.

        Returns:
            True if the extension started and the gate is initialized
        """
        global _channel

        if _initialized:
            _log.warning("Already connected")
            return True

        if _channel is not None:
            # Left over from a gate that was shut down without disconnect()
            await _channel.stop()
            _channel = None

        settings = settings or Config.get_settings()
        if not settings.extension_command:
            _log.error("No native extension configured (FSBRIDGE_EXTENSION_COMMAND)")
            return False

        channel = StdioChannel(
            settings.extension_command,
            settings.extension_args,
            sync_timeout=settings.sync_timeout,
        )
        if not await channel.start():
            return False

        _channel = channel
        if not cls.initialize(channel, settings):
            await cls.disconnect()
            return False
        return True

    @classmethod
    async def disconnect(cls) -> None:
        """Shut the gate down and stop the native extension if we started it."""
        global _channel

        cls.shutdown()
        if _channel is not None:
            await _channel.stop()
            _channel = None

    @classmethod
    def shutdown(cls) -> None:
        """Detach from the channel; pending requests are discarded."""
        global _transport, _manager, _settings, _initialized

        if _manager is not None:
            _manager.close()
        if _transport is not None:
            _transport.close()

        _transport = None
        _manager = None
        _settings = None
        _initialized = False

    @classmethod
    def is_initialized(cls) -> bool:
        """Check if the gate is initialized."""
        return _initialized

    @classmethod
    def get_manager(cls) -> FileSystemManager:
        """Get the manager, failing if the gate is not initialized."""
        if _manager is None:
            raise RuntimeError("FileSystemGate is not initialized. Call initialize() or connect() first.")
        return _manager

    # ==================== Health Checks ====================

    @classmethod
    def is_healthy(cls) -> bool:
        """Check if the gate is operational."""
        if not _initialized or _transport is None or _transport.closed:
            return False
        if _channel is not None and not _channel.is_running():
            return False
        return True

    @classmethod
    def get_health_status(cls) -> Dict[str, Any]:
        """Get detailed health information."""
        checks = {
            "transport_open": _transport is not None and not _transport.closed,
        }
        if _channel is not None:
            checks["extension_running"] = _channel.is_running()

        return build_health_status(
            gate_name="FileSystemGate",
            initialized=_initialized,
            dependencies=cls.get_dependencies(),
            checks=checks,
            details={
                "pending_requests": _transport.pending_count if _transport else 0,
                "extension_pid": _channel.pid if _channel else None,
                "request_timeout": _settings.effective_request_timeout if _settings else None,
            },
        )

    @classmethod
    def get_dependencies(cls) -> List[str]:
        """List external dependencies."""
        return ["native_filesystem_extension"]

    # ==================== Manager operations ====================

    @classmethod
    def resolve(
        cls,
        location: str,
        onsuccess: Callable[[File], Any],
        onerror: Optional[Callable[[FileSystemError], Any]] = None,
        mode: Optional[str] = None,
    ) -> Optional[PendingRequest]:
        """Resolve a virtual location into a File."""
        return cls.get_manager().resolve(location, onsuccess, onerror, mode)

    @classmethod
    def get_storage(
        cls,
        label: str,
        onsuccess: Callable[[FileSystemStorage], Any],
        onerror: Optional[Callable[[FileSystemError], Any]] = None,
    ) -> PendingRequest:
        """Look up a storage by label."""
        return cls.get_manager().get_storage(label, onsuccess, onerror)

    @classmethod
    def list_storages(
        cls,
        onsuccess: Callable[[List[FileSystemStorage]], Any],
        onerror: Optional[Callable[[FileSystemError], Any]] = None,
    ) -> PendingRequest:
        """List all storages."""
        return cls.get_manager().list_storages(onsuccess, onerror)

    @classmethod
    def add_storage_state_change_listener(
        cls,
        onsuccess: Callable[[FileSystemStorage], Any],
        onerror: Optional[Callable[[FileSystemError], Any]] = None,
    ) -> int:
        """Register a storage state listener; returns its watch id."""
        return cls.get_manager().add_storage_state_change_listener(onsuccess, onerror)

    @classmethod
    def remove_storage_state_change_listener(cls, watch_id: int) -> None:
        """Unregister a storage state listener."""
        cls.get_manager().remove_storage_state_change_listener(watch_id)

    @classmethod
    def get_max_path_length(cls) -> int:
        """Maximum path length supported by the native side."""
        return cls.get_manager().get_max_path_length()


# ==================== Module-level API ====================


def initialize(
    channel: HostChannel,
    settings: Optional[BridgeSettings] = None,
    scheduler: Optional[Scheduler] = None,
) -> bool:
    """Initialize the FileSystemGate."""
    return FileSystemGate.initialize(channel, settings, scheduler)


async def connect(settings: Optional[BridgeSettings] = None) -> bool:
    """Start the native extension and initialize."""
    return await FileSystemGate.connect(settings)


async def disconnect() -> None:
    """Shut down and stop the native extension."""
    await FileSystemGate.disconnect()


def shutdown() -> None:
    """Detach from the channel."""
    FileSystemGate.shutdown()


def is_initialized() -> bool:
    """Check if initialized."""
    return FileSystemGate.is_initialized()


def is_healthy() -> bool:
    """Check if healthy."""
    return FileSystemGate.is_healthy()


def get_health_status() -> Dict[str, Any]:
    """Get health status."""
    return FileSystemGate.get_health_status()


def get_dependencies() -> List[str]:
    """List dependencies."""
    return FileSystemGate.get_dependencies()


def get_manager() -> FileSystemManager:
    """Get the manager."""
    return FileSystemGate.get_manager()


def resolve(location, onsuccess, onerror=None, mode=None) -> Optional[PendingRequest]:
    """Resolve a virtual location into a File."""
    return FileSystemGate.resolve(location, onsuccess, onerror, mode)


def get_storage(label, onsuccess, onerror=None) -> PendingRequest:
    """Look up a storage by label."""
    return FileSystemGate.get_storage(label, onsuccess, onerror)


def list_storages(onsuccess, onerror=None) -> PendingRequest:
    """List all storages."""
    return FileSystemGate.list_storages(onsuccess, onerror)


def add_storage_state_change_listener(onsuccess, onerror=None) -> int:
    """Register a storage state listener."""
    return FileSystemGate.add_storage_state_change_listener(onsuccess, onerror)


def remove_storage_state_change_listener(watch_id: int) -> None:
    """Unregister a storage state listener."""
    FileSystemGate.remove_storage_state_change_listener(watch_id)


def get_max_path_length() -> int:
    """Maximum path length supported by the native side."""
    return FileSystemGate.get_max_path_length()


__all__ = [
    # Main class
    "FileSystemGate",
    # Lifecycle
    "initialize",
    "connect",
    "disconnect",
    "shutdown",
    "is_initialized",
    "is_healthy",
    "get_health_status",
    "get_dependencies",
    "get_manager",
    # Manager operations
    "resolve",
    "get_storage",
    "list_storages",
    "add_storage_state_change_listener",
    "remove_storage_state_change_listener",
    "get_max_path_length",
    # Entities
    "FileSystemManager",
    "File",
    "StatCache",
    "FileStream",
    # Models
    "FileFilter",
    "FileStat",
    "FileSystemStorage",
    "StorageState",
    "StorageType",
    "StreamMode",
    # Errors
    "ErrorCode",
    "FileSystemError",
    "FileIOError",
    "InvalidStateError",
    "InvalidValuesError",
    "NotFoundError",
    "PathSecurityError",
    "RequestTimeoutError",
    "TypeMismatchError",
]
