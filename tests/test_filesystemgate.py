"""
Tests for the FileSystemGate facade.
"""

import logging
import sys

import pytest

import fsbridge.FileSystemGate as fs_gate
from fsbridge.Config.schema import BridgeSettings
from fsbridge.shared.gate import GateLogger
from fsbridge.FileSystemGate import (
    FileSystemGate,
    FileSystemManager,
    NotFoundError,
    get_health_status,
    get_manager,
    initialize,
    is_healthy,
    is_initialized,
    list_storages,
    resolve,
    shutdown,
)


# Extension that answers every async request with an empty success reply
IDLE_EXTENSION = r"""
import json, sys
for line in sys.stdin:
    frame = json.loads(line)
    request = json.loads(frame["message"])
    reply = {"isError": False, "reply_id": request.get("reply_id")}
    frame["message"] = json.dumps(reply)
    sys.stdout.write(json.dumps(frame) + "\n")
    sys.stdout.flush()
"""


class TestFileSystemGateInitialization:
    """Tests for FileSystemGate initialization."""

    def test_not_initialized_by_default(self):
        assert is_initialized() is False
        assert is_healthy() is False

    def test_get_manager_requires_initialize(self):
        with pytest.raises(RuntimeError):
            get_manager()

    def test_initialize(self, host, scheduler):
        result = FileSystemGate.initialize(host, BridgeSettings(), scheduler)

        assert result is True
        assert FileSystemGate.is_initialized() is True
        assert isinstance(FileSystemGate.get_manager(), FileSystemManager)
        assert host.listener is not None

    def test_initialize_twice_keeps_manager(self, host, scheduler):
        initialize(host, BridgeSettings(), scheduler)
        manager = get_manager()

        assert initialize(host, BridgeSettings(), scheduler) is True
        assert get_manager() is manager

    def test_initialize_reads_config(self, host, monkeypatch):
        monkeypatch.setenv("FSBRIDGE_REQUEST_TIMEOUT", "7")

        initialize(host)

        assert get_health_status()["details"]["request_timeout"] == 7.0

    def test_initialize_applies_log_level(self, host):
        try:
            initialize(host, BridgeSettings(log_level="WARNING"))

            assert logging.getLogger("fsbridge").level == logging.WARNING
        finally:
            GateLogger.set_level(logging.INFO)

    def test_initialize_with_broken_channel(self):
        assert FileSystemGate.initialize(object(), BridgeSettings()) is False
        assert is_initialized() is False
        assert fs_gate._settings is None
        assert get_health_status()["details"]["request_timeout"] is None

    def test_shutdown(self, host, scheduler):
        initialize(host, BridgeSettings(), scheduler)

        shutdown()

        assert is_initialized() is False
        assert host.listener is None
        with pytest.raises(RuntimeError):
            get_manager()


class TestHealth:

    def test_health_status(self, host, scheduler):
        initialize(host, BridgeSettings(request_timeout=0), scheduler)

        status = get_health_status()

        assert status["gate"] == "FileSystemGate"
        assert status["healthy"] is True
        assert status["checks"] == {"transport_open": True}
        assert status["dependencies"] == ["native_filesystem_extension"]
        assert status["details"]["pending_requests"] == 0
        assert status["details"]["extension_pid"] is None
        assert status["details"]["request_timeout"] is None

    def test_pending_requests_reported(self, host, scheduler):
        initialize(host, BridgeSettings(), scheduler)
        list_storages(lambda storages: None)

        assert get_health_status()["details"]["pending_requests"] == 1

    def test_unhealthy_before_initialize(self):
        status = get_health_status()

        assert status["healthy"] is False
        assert status["checks"]["transport_open"] is False


class TestOperations:

    def test_resolve_through_gate(self, host, scheduler):
        initialize(host, BridgeSettings(), scheduler)
        resolved = []

        resolve("documents", resolved.append)
        host.reply(host.last(), fullPath="/opt/usr/media/Documents")

        assert resolved[0].full_path == "/opt/usr/media/Documents"

    def test_storage_listener_through_gate(self, host, scheduler):
        initialize(host, BridgeSettings(), scheduler)
        changes = []

        watch_id = fs_gate.add_storage_state_change_listener(changes.append)
        host.deliver({"cmd": "StorageStateChanged", "label": "sd", "state": "REMOVED"})
        fs_gate.remove_storage_state_change_listener(watch_id)

        assert changes[0].label == "sd"
        with pytest.raises(NotFoundError):
            fs_gate.remove_storage_state_change_listener(watch_id)

    def test_max_path_length_through_gate(self, host, scheduler):
        initialize(host, BridgeSettings(max_path_length=512), scheduler)

        assert fs_gate.get_max_path_length() == 512


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_without_command(self):
        assert await FileSystemGate.connect(BridgeSettings()) is False
        assert is_initialized() is False

    @pytest.mark.asyncio
    async def test_connect_missing_executable(self):
        settings = BridgeSettings(extension_command="/nonexistent/fs-extension")

        assert await fs_gate.connect(settings) is False
        assert is_initialized() is False

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self):
        settings = BridgeSettings(
            extension_command=sys.executable,
            extension_args=["-c", IDLE_EXTENSION],
        )

        assert await fs_gate.connect(settings) is True
        try:
            status = get_health_status()
            assert status["healthy"] is True
            assert status["checks"]["extension_running"] is True
            assert status["details"]["extension_pid"] is not None
        finally:
            await fs_gate.disconnect()

        assert is_initialized() is False
        assert get_health_status()["details"]["extension_pid"] is None

    @pytest.mark.asyncio
    async def test_connect_twice_keeps_one_extension(self):
        settings = BridgeSettings(
            extension_command=sys.executable,
            extension_args=["-c", IDLE_EXTENSION],
        )

        assert await fs_gate.connect(settings) is True
        channel = fs_gate._channel
        try:
            assert await fs_gate.connect(settings) is True
            assert fs_gate._channel is channel
        finally:
            await fs_gate.disconnect()

        assert channel.is_running() is False

    @pytest.mark.asyncio
    async def test_connect_after_shutdown_stops_old_extension(self):
        settings = BridgeSettings(
            extension_command=sys.executable,
            extension_args=["-c", IDLE_EXTENSION],
        )

        assert await fs_gate.connect(settings) is True
        old_channel = fs_gate._channel
        shutdown()
        try:
            assert await fs_gate.connect(settings) is True
            assert fs_gate._channel is not old_channel
            assert old_channel.is_running() is False
        finally:
            await fs_gate.disconnect()
