"""
ReplyChannel Transport Layer.

Serializes requests to JSON text, submits them to the host channel and
routes decoded replies to the correlator. Also offers the blocking
call/response path used for metadata reads and stream I/O.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from fsbridge.shared.gate import GateLogger
from fsbridge.ReplyChannel.correlator import (
    PendingRequest,
    ReplyCallback,
    ReplyCorrelator,
    Scheduler,
)
from fsbridge.ReplyChannel.models import BridgeReply, BridgeRequest

_log = GateLogger.get("ReplyChannel.Transport")

DEFAULT_REQUEST_TIMEOUT = 30.0

# Sentinel meaning "use the transport's request_timeout"
_DEFAULT = object()


class ChannelError(Exception):
    """Raised on transport level misuse or failure."""
    pass


class MessageEncodingError(ChannelError):
    """A request could not be serialized (programmer error)."""
    pass


class MessageDecodingError(ChannelError):
    """An inbound message is not a JSON object."""
    pass


@runtime_checkable
class HostChannel(Protocol):
    """The message pipe to the native extension."""

    def post_message(self, message: str) -> None:
        """Submit a message one-way."""
        ...

    def send_sync_message(self, message: str) -> str:
        """Submit a message and block until the extension answers."""
        ...

    def set_message_listener(self, listener: Optional[Callable[[str], None]]) -> None:
        """Install the callable receiving inbound async messages."""
        ...


def decode_message(raw: str) -> Dict[str, Any]:
    """Parse message text into a dict, raising MessageDecodingError."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageDecodingError(f"Invalid JSON message: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodingError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class Transport:
    """
    JSON-over-message-channel transport.

    Owns the ReplyCorrelator; its lifetime is that of the channel it was
    attached to.
    """

    def __init__(
        self,
        channel: HostChannel,
        request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT,
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Attach to a host channel.

        Args:
            channel: Host channel implementation
            request_timeout: Default seconds before async requests expire (None/0 = never)
            scheduler: Timer factory for timeouts (defaults to the running asyncio loop)
        """
        self.channel = channel
        self.request_timeout = request_timeout or None
        self._correlator = ReplyCorrelator(scheduler=scheduler)
        self._notification_handlers: Dict[str, List[Callable[[BridgeReply], Any]]] = {}
        self._in_sync_call = False
        self._closed = False

        channel.set_message_listener(self.on_message)

    @property
    def correlator(self) -> ReplyCorrelator:
        """The pending-request table."""
        return self._correlator

    @property
    def pending_count(self) -> int:
        """Number of async requests awaiting a reply."""
        return self._correlator.pending_count

    @property
    def closed(self) -> bool:
        """True once close() has run."""
        return self._closed

    # ==================== Outbound ====================

    def send(self, request: BridgeRequest) -> None:
        """Serialize ``request`` and submit it one-way."""
        self._check_open()
        text = self._encode(request)
        _log.debug(f"Posting: {text}")
        self.channel.post_message(text)

    def post(
        self,
        command: str,
        callback: ReplyCallback,
        timeout: Any = _DEFAULT,
        **fields: Any,
    ) -> PendingRequest:
        """
        Send an async request and register ``callback`` for its reply.

        Args:
            command: Command name
            callback: Invoked once with the BridgeReply (or a timeout reply)
            timeout: Seconds before expiry; defaults to request_timeout
            **fields: Command specific fields

        Returns:
            PendingRequest handle (cancellable)
        """
        self._check_open()

        reply_id = self._correlator.next_id()
        request = self._build(command, reply_id=reply_id, **fields)
        text = self._encode(request)

        if timeout is _DEFAULT:
            timeout = self.request_timeout

        pending = self._correlator.register(
            reply_id, callback, timeout=timeout, command=command
        )

        _log.debug(f"Posting: {text}")
        try:
            self.channel.post_message(text)
        except Exception:
            self._correlator.cancel(reply_id)
            raise

        return pending

    def call(self, command: str, **fields: Any) -> BridgeReply:
        """
        Blocking call/response; bypasses the correlator.

        Raises:
            ChannelError: On a nested synchronous call or a closed transport
            MessageDecodingError: If the reply is not a JSON object
        """
        self._check_open()

        if self._in_sync_call:
            raise ChannelError(f"Nested synchronous call: {command}")

        request = self._build(command, **fields)
        text = self._encode(request)

        _log.debug(f"Calling: {text}")
        self._in_sync_call = True
        try:
            raw = self.channel.send_sync_message(text)
        finally:
            self._in_sync_call = False

        data = decode_message(raw)
        try:
            return BridgeReply.from_dict(data)
        except ValidationError as e:
            raise MessageDecodingError(f"Malformed reply to {command}: {e}") from e

    # ==================== Inbound ====================

    def on_message(self, raw: str) -> None:
        """
        Handle a message delivered by the host channel.

        Raises:
            MessageDecodingError: If the message is malformed; only that
                message is lost.
        """
        data = decode_message(raw)
        _log.debug(f"Received message: {raw[:200]}")

        try:
            reply = BridgeReply.from_dict(data)
        except ValidationError as e:
            raise MessageDecodingError(f"Malformed reply: {e}") from e

        if reply.reply_id is None and reply.get("cmd"):
            self._notify(reply)
            return

        self._correlator.dispatch(reply)

    def add_notification_handler(
        self, command: str, handler: Callable[[BridgeReply], Any]
    ) -> None:
        """Receive messages that carry ``cmd == command`` and no reply_id."""
        self._notification_handlers.setdefault(command, []).append(handler)

    def remove_notification_handler(
        self, command: str, handler: Callable[[BridgeReply], Any]
    ) -> bool:
        """Stop delivering ``command`` notifications to ``handler``."""
        handlers = self._notification_handlers.get(command, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def _notify(self, message: BridgeReply) -> None:
        command = message.get("cmd")
        handlers = list(self._notification_handlers.get(command, []))
        if not handlers:
            _log.debug(f"Received notification without handler: {command}")
            return
        for handler in handlers:
            handler(message)

    # ==================== Lifecycle ====================

    def close(self) -> None:
        """Detach from the channel and drop every pending request."""
        if self._closed:
            return
        self._closed = True
        self._correlator.clear()
        self._notification_handlers.clear()
        self.channel.set_message_listener(None)
        _log.info("Transport closed")

    # ==================== Helpers ====================

    def _check_open(self) -> None:
        if self._closed:
            raise ChannelError("Transport is closed")

    @staticmethod
    def _build(command: str, reply_id: Optional[int] = None, **fields: Any) -> BridgeRequest:
        try:
            return BridgeRequest(cmd=command, reply_id=reply_id, **fields)
        except ValidationError as e:
            raise MessageEncodingError(f"Invalid request {command}: {e}") from e

    @staticmethod
    def _encode(request: BridgeRequest) -> str:
        try:
            return request.to_json()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise MessageEncodingError(f"Cannot serialize {request.cmd}: {e}") from e


__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "ChannelError",
    "MessageEncodingError",
    "MessageDecodingError",
    "HostChannel",
    "Transport",
    "decode_message",
]
