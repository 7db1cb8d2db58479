"""
ReplyChannel Correlator.

Matches asynchronous replies to the request that caused them via the
``reply_id`` each request carries.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

from fsbridge.shared.gate import GateLogger
from fsbridge.ReplyChannel.models import BridgeReply

_log = GateLogger.get("ReplyChannel.Correlator")

ReplyCallback = Callable[[BridgeReply], Any]


class TimerHandle(Protocol):
    """Anything with ``cancel()``; asyncio.TimerHandle qualifies."""

    def cancel(self) -> Any:
        ...


Scheduler = Callable[[float, Callable[[], None]], Optional[TimerHandle]]


def asyncio_scheduler(delay: float, fn: Callable[[], None]) -> Optional[TimerHandle]:
    """Arm ``fn`` on the running event loop; no loop means no timer."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _log.debug("No running event loop, request timeout not armed")
        return None
    return loop.call_later(delay, fn)


@dataclass(eq=False)
class PendingRequest:
    """An outstanding request awaiting its reply."""

    reply_id: int
    callback: ReplyCallback
    command: str = ""
    timeout: Optional[float] = None
    created_at: float = field(default_factory=time.monotonic)
    _timer: Optional[TimerHandle] = field(default=None, repr=False)
    _correlator: Optional["ReplyCorrelator"] = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        """True until the reply arrives, the timeout fires or it is cancelled."""
        return self._correlator is not None and self._correlator.is_pending(self.reply_id)

    def cancel(self) -> bool:
        """Withdraw the request; its callback will never fire."""
        if self._correlator is None:
            return False
        return self._correlator.cancel(self.reply_id)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ReplyCorrelator:
    """
    Pending-request table keyed by reply id.

    Every registered callback fires at most once: on the matching reply or
    on timeout. Cancelled requests never fire.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self._ids = itertools.count()
        self._pending: Dict[int, PendingRequest] = {}
        self._scheduler: Scheduler = scheduler or asyncio_scheduler

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting a reply."""
        return len(self._pending)

    def next_id(self) -> int:
        """Return an id larger than any returned before."""
        return next(self._ids)

    def is_pending(self, reply_id: int) -> bool:
        """Check if a request with this id awaits its reply."""
        return reply_id in self._pending

    def register(
        self,
        reply_id: int,
        callback: ReplyCallback,
        timeout: Optional[float] = None,
        command: str = "",
    ) -> PendingRequest:
        """
        Store ``callback`` under ``reply_id``.

        Args:
            reply_id: Id carried by the outgoing request
            callback: Called with the reply exactly once
            timeout: Seconds before the request expires (None or 0 = never)
            command: Command name, for diagnostics

        Returns:
            The PendingRequest handle

        Raises:
            ValueError: If ``reply_id`` is already pending
        """
        if reply_id in self._pending:
            raise ValueError(f"reply_id {reply_id} is already pending")

        request = PendingRequest(
            reply_id=reply_id,
            callback=callback,
            command=command,
            timeout=timeout,
            _correlator=self,
        )
        self._pending[reply_id] = request

        if timeout:
            request._timer = self._scheduler(timeout, lambda: self.expire(reply_id))

        return request

    def dispatch(self, reply: BridgeReply) -> bool:
        """
        Route a reply to its pending callback.

        Returns:
            True if a callback was found and invoked
        """
        request = self._pending.pop(reply.reply_id, None) if reply.reply_id is not None else None
        if request is None:
            _log.warning(f"Dropping reply with unknown reply_id: {reply.reply_id}")
            return False

        request._disarm()
        request.callback(reply)
        return True

    def expire(self, reply_id: int) -> bool:
        """Fail a pending request with a timeout reply."""
        request = self._pending.pop(reply_id, None)
        if request is None:
            return False

        request._timer = None
        _log.warning(
            f"Request {reply_id} ({request.command or 'unknown'}) timed out "
            f"after {request.timeout}s"
        )
        request.callback(BridgeReply.timeout(reply_id))
        return True

    def cancel(self, reply_id: int) -> bool:
        """Withdraw a pending request without invoking its callback."""
        request = self._pending.pop(reply_id, None)
        if request is None:
            return False

        request._disarm()
        _log.debug(f"Cancelled request {reply_id} ({request.command})")
        return True

    def clear(self) -> None:
        """Cancel every pending request (channel teardown)."""
        for request in list(self._pending.values()):
            request._disarm()
        if self._pending:
            _log.info(f"Discarding {len(self._pending)} pending request(s)")
        self._pending.clear()


__all__ = [
    "PendingRequest",
    "ReplyCorrelator",
    "Scheduler",
    "TimerHandle",
    "asyncio_scheduler",
]
