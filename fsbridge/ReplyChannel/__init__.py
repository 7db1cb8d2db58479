"""
ReplyChannel - JSON request/reply messaging with the native extension.

Components:
    - ReplyCorrelator: matches async replies to pending requests by reply_id
    - Transport: encodes requests, posts them, routes inbound messages,
      offers the blocking call() path
    - StdioChannel: host channel running the extension as a subprocess
"""

from fsbridge.ReplyChannel.models import (
    TIMEOUT_ERROR_CODE,
    BridgeReply,
    BridgeRequest,
)
from fsbridge.ReplyChannel.correlator import (
    PendingRequest,
    ReplyCorrelator,
    asyncio_scheduler,
)
from fsbridge.ReplyChannel.transport import (
    DEFAULT_REQUEST_TIMEOUT,
    ChannelError,
    HostChannel,
    MessageDecodingError,
    MessageEncodingError,
    Transport,
)
from fsbridge.ReplyChannel.stdio import StdioChannel

__all__ = [
    "TIMEOUT_ERROR_CODE",
    "BridgeReply",
    "BridgeRequest",
    "PendingRequest",
    "ReplyCorrelator",
    "asyncio_scheduler",
    "DEFAULT_REQUEST_TIMEOUT",
    "ChannelError",
    "HostChannel",
    "MessageDecodingError",
    "MessageEncodingError",
    "Transport",
    "StdioChannel",
]
