"""
Tests for shared Gate utilities.
"""

import json
import logging

import pytest

from fsbridge.Config.schema import BridgeSettings
from fsbridge.shared.gate import (
    ConfigLoader,
    GateErrorHandler,
    GateLogger,
    PathUtils,
    build_health_status,
)


@pytest.fixture
def restore_level():
    root = logging.getLogger(GateLogger.ROOT)
    level = root.level
    yield root
    root.setLevel(level)


class TestGateLogger:

    def test_component_loggers_live_under_fsbridge(self):
        logger = GateLogger.get("ReplyChannel.Transport")

        assert logger.name == "fsbridge.ReplyChannel.Transport"
        assert logger is logging.getLogger("fsbridge.ReplyChannel.Transport")

    def test_root_gets_a_handler(self):
        GateLogger.get("FileSystemGate.File")

        assert logging.getLogger("fsbridge").handlers

    def test_set_level_by_constant(self, restore_level):
        GateLogger.set_level(logging.DEBUG)

        assert restore_level.level == logging.DEBUG
        assert GateLogger.get("ReplyChannel.Stdio").getEffectiveLevel() == logging.DEBUG

    @pytest.mark.parametrize("name", ["warning", "WARNING", "Warning"])
    def test_set_level_by_name(self, restore_level, name):
        GateLogger.set_level(name)

        assert restore_level.level == logging.WARNING

    def test_unknown_level_name_falls_back_to_info(self, restore_level):
        GateLogger.set_level("LOUD")

        assert restore_level.level == logging.INFO


class TestGateErrorHandler:

    def test_returns_default(self):
        result = GateErrorHandler.handle(
            "FileSystemGate.File", "size of /opt/a", OSError("gone"), default_return=0
        )

        assert result == 0

    def test_logs_against_component(self, caplog):
        with caplog.at_level(logging.WARNING):
            GateErrorHandler.handle(
                "FileSystemGate.Manager", "getMaxPathLength", RuntimeError("boom"),
                log_level=logging.WARNING,
            )

        record = caplog.records[-1]
        assert record.name == "fsbridge.FileSystemGate.Manager"
        assert record.levelno == logging.WARNING
        assert "getMaxPathLength failed: boom" in record.getMessage()

    def test_debug_is_quiet_at_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="fsbridge"):
            GateErrorHandler.handle(
                "FileSystemGate.File", "modified of /opt/a", OSError("gone"),
                log_level=logging.DEBUG,
            )

        assert "modified of /opt/a" not in caplog.text


class TestHealthStatus:

    def test_healthy(self):
        status = build_health_status(
            "FileSystemGate", True, ["native_filesystem_extension"],
            {"transport_open": True, "extension_running": True},
            {"pending_requests": 2},
        )

        assert status == {
            "gate": "FileSystemGate",
            "healthy": True,
            "initialized": True,
            "dependencies": ["native_filesystem_extension"],
            "checks": {"transport_open": True, "extension_running": True},
            "details": {"pending_requests": 2},
        }

    def test_failed_check(self):
        status = build_health_status(
            "FileSystemGate", True, [], {"transport_open": True, "extension_running": False}
        )

        assert status["healthy"] is False
        assert status["details"] == {}

    def test_not_initialized(self):
        status = build_health_status("FileSystemGate", False, [], {"transport_open": True})

        assert status["healthy"] is False


class TestConfigLoader:

    def test_missing_file_with_default(self, tmp_path):
        assert ConfigLoader.load(tmp_path / "fsbridge.json", dict) == {}

    def test_missing_file_without_default(self, tmp_path):
        assert ConfigLoader.load(tmp_path / "fsbridge.json", dict, create_default=False) is None

    def test_load_dict(self, tmp_path):
        path = tmp_path / "fsbridge.json"
        path.write_text(json.dumps({"request_timeout": 5, "log_level": "debug"}))

        assert ConfigLoader.load(path, dict) == {"request_timeout": 5, "log_level": "debug"}

    def test_dict_requires_object(self, tmp_path, caplog):
        path = tmp_path / "fsbridge.json"
        path.write_text("[1, 2]")

        with caplog.at_level(logging.ERROR):
            assert ConfigLoader.load(path, dict) is None

        assert "not an object" in caplog.text

    def test_invalid_json(self, tmp_path, caplog):
        path = tmp_path / "fsbridge.json"
        path.write_text("{ request_timeout: ")

        with caplog.at_level(logging.ERROR):
            assert ConfigLoader.load(path, dict) is None

        assert "Failed to load config" in caplog.text

    def test_load_settings_model(self, tmp_path):
        path = tmp_path / "fsbridge.json"
        path.write_text(json.dumps({"sync_timeout": 2.5, "extension_args": ["--quiet"]}))

        settings = ConfigLoader.load(path, BridgeSettings)

        assert settings.sync_timeout == 2.5
        assert settings.extension_args == ["--quiet"]

    def test_invalid_settings_model(self, tmp_path):
        path = tmp_path / "fsbridge.json"
        path.write_text(json.dumps({"sync_timeout": -1}))

        assert ConfigLoader.load(path, BridgeSettings) is None

    def test_save_dict_creates_directories(self, tmp_path):
        path = tmp_path / "config" / "fsbridge.json"

        assert ConfigLoader.save(path, {"max_path_length": 1024}) is True

        assert json.loads(path.read_text()) == {"max_path_length": 1024}

    def test_save_settings_model(self, tmp_path):
        path = tmp_path / "fsbridge.json"

        assert ConfigLoader.save(path, BridgeSettings(log_level="DEBUG")) is True

        saved = json.loads(path.read_text())
        assert saved["log_level"] == "DEBUG"
        assert saved["request_timeout"] == 30.0


class TestPathUtils:

    def test_ensure_parent(self, tmp_path):
        path = tmp_path / "a" / "b" / "fsbridge.json"

        assert PathUtils.ensure_parent(path) == tmp_path / "a" / "b"
        assert (tmp_path / "a" / "b").is_dir()
        assert not path.exists()
