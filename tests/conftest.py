"""
Pytest configuration and fixtures for fsbridge tests.
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

# Check for pytest-asyncio
try:
    import pytest_asyncio
    HAS_PYTEST_ASYNCIO = True
except ImportError:
    HAS_PYTEST_ASYNCIO = False


def pytest_collection_modifyitems(config, items):
    """Skip async tests if pytest-asyncio is not installed."""
    if HAS_PYTEST_ASYNCIO:
        return

    import inspect
    skip_asyncio = pytest.mark.skip(
        reason="pytest-asyncio not installed - async tests require pytest-asyncio"
    )
    for item in items:
        if inspect.iscoroutinefunction(item.function):
            item.add_marker(skip_asyncio)


class FakeHost:
    """
    In-process stand-in for the native extension's message channel.

    Async requests are recorded and answered on demand with reply()/fail();
    sync requests are answered from ``sync_replies`` (a dict, a list of
    dicts consumed in order, or a callable taking the request).
    """

    def __init__(self):
        self.posted: List[Dict[str, Any]] = []
        self.sync_calls: List[Dict[str, Any]] = []
        self.sync_replies: Dict[str, Any] = {}
        self.listener: Optional[Callable[[str], None]] = None

    # HostChannel protocol
    def post_message(self, message: str) -> None:
        self.posted.append(json.loads(message))

    def send_sync_message(self, message: str) -> str:
        request = json.loads(message)
        self.sync_calls.append(request)

        reply = self.sync_replies.get(request["cmd"])
        if reply is None:
            reply = {"isError": True, "errorCode": 9}
        elif isinstance(reply, list):
            reply = reply.pop(0)
        elif callable(reply):
            reply = reply(request)

        return reply if isinstance(reply, str) else json.dumps(reply)

    def set_message_listener(self, listener: Optional[Callable[[str], None]]) -> None:
        self.listener = listener

    # Test helpers
    @property
    def round_trips(self) -> int:
        return len(self.posted) + len(self.sync_calls)

    def last(self, cmd: Optional[str] = None) -> Dict[str, Any]:
        """Most recent posted request (optionally of a given command)."""
        for request in reversed(self.posted):
            if cmd is None or request["cmd"] == cmd:
                return request
        raise AssertionError(f"No posted request for {cmd}")

    def deliver(self, message: Any) -> None:
        text = message if isinstance(message, str) else json.dumps(message)
        self.listener(text)

    def reply(self, request: Dict[str, Any], **payload: Any) -> None:
        self.deliver({"reply_id": request["reply_id"], "isError": False, **payload})

    def fail(self, request: Dict[str, Any], code: int) -> None:
        self.deliver({"reply_id": request["reply_id"], "isError": True, "errorCode": code})


class ManualTimer:
    def __init__(self, delay: float, fn: Callable[[], None]):
        self.delay = delay
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when told to."""

    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self) -> None:
        for timer in list(self.armed):
            timer.cancelled = True
            timer.fn()


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(host, scheduler):
    from fsbridge.ReplyChannel import Transport

    transport = Transport(host, request_timeout=30.0, scheduler=scheduler)
    yield transport
    transport.close()


@pytest.fixture
def manager(transport, clock):
    from fsbridge.FileSystemGate import FileSystemManager

    return FileSystemManager(transport, stat_freshness=0.005, clock=clock)


class Recorder:
    """Collects success/error handler invocations."""

    def __init__(self):
        self.successes: List[tuple] = []
        self.errors: List[Exception] = []

    def success(self, *args):
        self.successes.append(args)

    def error(self, error):
        self.errors.append(error)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture(autouse=True)
def reset_module_state(monkeypatch, tmp_path):
    """Reset module-level state between tests."""
    monkeypatch.chdir(tmp_path)
    for key in list(__import__("os").environ):
        if key.startswith("FSBRIDGE_"):
            monkeypatch.delenv(key, raising=False)

    yield

    try:
        import fsbridge.FileSystemGate as fs_gate
        fs_gate.FileSystemGate.shutdown()
        fs_gate._channel = None
        fs_gate._settings = None
    except (ImportError, AttributeError):
        pass

    try:
        import fsbridge.Config as config_module
        config_module._manager = None
    except (ImportError, AttributeError):
        pass
