"""
ReplyChannel Stdio Channel.

Runs the native filesystem extension as a subprocess and exchanges
newline-delimited JSON frames with it over stdin/stdout:

    {"kind": "async", "message": "<request or reply text>"}
    {"kind": "sync",  "seq": 7, "message": "<request or reply text>"}

Async frames coming back are delivered on the event loop that started the
channel. Sync frames carry a sequence number the extension echoes in its
answer; send_sync_message() only accepts the answer with its own number.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import os
import queue
import subprocess
import threading
import time
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from fsbridge.shared.gate import GateLogger
from fsbridge.ReplyChannel.transport import ChannelError, MessageDecodingError

_log = GateLogger.get("ReplyChannel.Stdio")

FRAME_ASYNC = "async"
FRAME_SYNC = "sync"

# Marks end-of-stream in the sync reply queue
_EOF = None


class Frame(NamedTuple):
    kind: str
    message: str
    seq: Optional[int] = None


def encode_frame(kind: str, message: str, seq: Optional[int] = None) -> bytes:
    """Wrap message text into one line of the stdio protocol."""
    if kind not in (FRAME_ASYNC, FRAME_SYNC):
        raise ValueError(f"Unknown frame kind: {kind}")
    frame = {"kind": kind, "message": message}
    if seq is not None:
        frame["seq"] = seq
    return (json.dumps(frame) + "\n").encode("utf-8")


def decode_frame(line: bytes) -> Frame:
    """Split one protocol line into a Frame."""
    try:
        frame = json.loads(line.decode("utf-8", errors="replace"))
    except ValueError as e:
        raise MessageDecodingError(f"Invalid frame: {e}") from e

    if not isinstance(frame, dict):
        raise MessageDecodingError("Frame is not a JSON object")

    kind = frame.get("kind")
    message = frame.get("message")
    seq = frame.get("seq")
    if kind not in (FRAME_ASYNC, FRAME_SYNC) or not isinstance(message, str):
        raise MessageDecodingError(f"Malformed frame: {line[:200]!r}")
    if seq is not None and (isinstance(seq, bool) or not isinstance(seq, int)):
        raise MessageDecodingError(f"Malformed frame sequence: {seq!r}")
    return Frame(kind, message, seq)


class StdioChannel:
    """
    Host channel backed by a subprocess.

    Implements the HostChannel protocol used by Transport.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        sync_timeout: float = 10.0,
    ):
        """
        Initialize channel.

        Args:
            command: Native extension executable
            args: Command arguments
            env: Additional environment variables
            sync_timeout: Seconds send_sync_message() waits for an answer
        """
        self.command = command
        self.args = args or []
        self.env = env or {}
        self.sync_timeout = sync_timeout

        self._process: Optional[subprocess.Popen] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reader: Optional[threading.Thread] = None
        self._listener: Optional[Callable[[str], None]] = None
        self._sync_replies: "queue.Queue[Optional[Tuple[Optional[int], str]]]" = queue.Queue()
        self._sync_seq = itertools.count(1)
        self._write_lock = threading.Lock()
        self._closed = True
        self._eof = False

    @property
    def pid(self) -> Optional[int]:
        """Get subprocess PID."""
        return self._process.pid if self._process else None

    def is_running(self) -> bool:
        """Check if subprocess is still running."""
        return self._process is not None and self._process.poll() is None

    async def start(self) -> bool:
        """
        Start the subprocess and begin reading frames.

        Returns:
            True if subprocess started successfully
        """
        if self._process is not None:
            _log.warning("Channel already started")
            return True

        process_env = os.environ.copy()
        process_env.update(self.env)

        cmd = [self.command] + self.args
        _log.info(f"Starting native extension: {' '.join(cmd)}")

        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                env=process_env,
                shell=False,
                bufsize=0,
            )
        except FileNotFoundError as e:
            _log.error(f"Command not found: {self.command} - {e}")
            return False
        except OSError as e:
            _log.error(f"Failed to start native extension: {e}")
            return False

        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._eof = False
        self._reader = threading.Thread(
            target=self._read_loop, name="fsbridge-stdio-reader", daemon=True
        )
        self._reader.start()

        _log.info(f"Native extension started with PID {self._process.pid}")
        return True

    async def stop(self) -> None:
        """Stop the subprocess and cleanup."""
        self._closed = True

        if self._process:
            try:
                if self._process.stdin:
                    self._process.stdin.close()
                self._process.terminate()
                try:
                    await asyncio.to_thread(self._process.wait, 2)
                except subprocess.TimeoutExpired:
                    self._process.kill()
                    await asyncio.to_thread(self._process.wait, 1)
            except OSError as e:
                _log.warning(f"Error stopping process: {e}")
            finally:
                self._process = None

        if self._reader:
            await asyncio.to_thread(self._reader.join, 2)
            self._reader = None

        self._loop = None
        _log.info("Channel stopped")

    # ==================== HostChannel ====================

    def set_message_listener(self, listener: Optional[Callable[[str], None]]) -> None:
        """Install the receiver of async messages."""
        self._listener = listener

    def post_message(self, message: str) -> None:
        """Write an async frame."""
        self._write(encode_frame(FRAME_ASYNC, message))

    def send_sync_message(self, message: str) -> str:
        """
        Write a sync frame and block for the answer carrying its sequence number.

        Answers to earlier calls that gave up waiting are discarded.

        Raises:
            ChannelError: If the extension does not answer in time or exits
        """
        if self._eof:
            raise ChannelError("Native extension closed its output")

        seq = next(self._sync_seq)
        self._write(encode_frame(FRAME_SYNC, message, seq))

        deadline = time.monotonic() + self.sync_timeout
        while True:
            try:
                answer = self._sync_replies.get(timeout=max(deadline - time.monotonic(), 0))
            except queue.Empty:
                raise ChannelError(
                    f"Synchronous call {seq} timed out after {self.sync_timeout}s"
                ) from None

            if answer is _EOF:
                raise ChannelError("Native extension closed its output")

            answer_seq, text = answer
            if answer_seq == seq:
                return text
            _log.warning(f"Discarding stale sync answer {answer_seq} (waiting for {seq})")

    # ==================== Internals ====================

    def _write(self, data: bytes) -> None:
        if self._closed or not self._process or not self._process.stdin:
            raise ChannelError("Channel not connected")

        with self._write_lock:
            try:
                self._process.stdin.write(data)
                self._process.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                raise ChannelError(f"Failed to write to native extension: {e}") from e

    def _read_loop(self) -> None:
        """Reader thread: route frames until EOF."""
        stdout = self._process.stdout if self._process else None
        if stdout is None:
            return

        try:
            for line in iter(stdout.readline, b""):
                if not line.strip():
                    continue
                try:
                    frame = decode_frame(line)
                except MessageDecodingError as e:
                    _log.warning(str(e))
                    continue

                if frame.kind == FRAME_SYNC:
                    self._sync_replies.put((frame.seq, frame.message))
                else:
                    self._schedule_delivery(frame.message)
        except (OSError, ValueError) as e:
            if not self._closed:
                _log.warning(f"Read error: {e}")
        finally:
            self._eof = True
            self._sync_replies.put(_EOF)

    def _schedule_delivery(self, message: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            _log.debug("No event loop, dropping async message")
            return
        try:
            loop.call_soon_threadsafe(self._deliver, message)
        except RuntimeError:
            # Loop closed after the check above
            _log.debug("Event loop closed, dropping async message")
            self._loop = None

    def _deliver(self, message: str) -> None:
        """Runs on the event loop: hand one async message to the listener."""
        if self._listener is None:
            _log.debug("No listener installed, dropping message")
            return
        try:
            self._listener(message)
        except MessageDecodingError as e:
            _log.warning(f"Dropping malformed message: {e}")
        except Exception as e:
            _log.error(f"Error handling message: {e}")


__all__ = [
    "FRAME_ASYNC",
    "FRAME_SYNC",
    "Frame",
    "StdioChannel",
    "encode_frame",
    "decode_frame",
]
