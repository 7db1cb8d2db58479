"""
Tests for ReplyChannel correlation of async replies.
"""

import asyncio
import logging

import pytest

from fsbridge.ReplyChannel import (
    TIMEOUT_ERROR_CODE,
    BridgeReply,
    ReplyCorrelator,
    asyncio_scheduler,
)


@pytest.fixture
def correlator(scheduler):
    return ReplyCorrelator(scheduler=scheduler)


class TestIds:

    def test_ids_start_at_zero_and_increase(self, correlator):
        ids = [correlator.next_id() for _ in range(5)]

        assert ids == [0, 1, 2, 3, 4]

    def test_ids_are_per_correlator(self, scheduler):
        first = ReplyCorrelator(scheduler=scheduler)
        second = ReplyCorrelator(scheduler=scheduler)
        first.next_id()

        assert second.next_id() == 0


class TestDispatch:

    def test_reply_reaches_its_callback_once(self, correlator):
        received = []
        correlator.register(0, received.append)

        assert correlator.dispatch(BridgeReply(reply_id=0, value="a")) is True
        assert correlator.dispatch(BridgeReply(reply_id=0, value="b")) is False

        assert len(received) == 1
        assert received[0].get("value") == "a"
        assert correlator.pending_count == 0

    def test_replies_in_any_order(self, correlator):
        received = {}
        for reply_id in range(3):
            correlator.register(reply_id, lambda r, i=reply_id: received.setdefault(i, r))

        for reply_id in (2, 0, 1):
            correlator.dispatch(BridgeReply(reply_id=reply_id, value=reply_id * 10))

        assert {i: r.get("value") for i, r in received.items()} == {0: 0, 1: 10, 2: 20}

    def test_unknown_reply_id_is_dropped_with_warning(self, correlator, caplog):
        received = []
        correlator.register(0, received.append)

        with caplog.at_level(logging.WARNING):
            assert correlator.dispatch(BridgeReply(reply_id=7)) is False

        assert received == []
        assert correlator.is_pending(0)
        assert "unknown reply_id: 7" in caplog.text

    def test_reply_without_id_is_dropped(self, correlator):
        assert correlator.dispatch(BridgeReply()) is False

    def test_duplicate_registration_rejected(self, correlator):
        correlator.register(0, lambda r: None)

        with pytest.raises(ValueError):
            correlator.register(0, lambda r: None)


class TestTimeouts:

    def test_timeout_arms_timer(self, correlator, scheduler):
        correlator.register(0, lambda r: None, timeout=5.0, command="FileListFiles")

        assert len(scheduler.armed) == 1
        assert scheduler.armed[0].delay == 5.0

    def test_no_timeout_no_timer(self, correlator, scheduler):
        correlator.register(0, lambda r: None)
        correlator.register(1, lambda r: None, timeout=0)

        assert scheduler.timers == []

    def test_expiry_delivers_timeout_reply(self, correlator, scheduler, caplog):
        received = []
        correlator.register(3, received.append, timeout=1.0, command="FileCopyTo")

        with caplog.at_level(logging.WARNING):
            scheduler.fire_all()

        assert len(received) == 1
        assert received[0].reply_id == 3
        assert received[0].is_error is True
        assert received[0].error_code == TIMEOUT_ERROR_CODE
        assert "FileCopyTo" in caplog.text
        assert correlator.pending_count == 0

    def test_late_reply_after_expiry_is_dropped(self, correlator, scheduler):
        received = []
        correlator.register(0, received.append, timeout=1.0)
        scheduler.fire_all()

        assert correlator.dispatch(BridgeReply(reply_id=0)) is False
        assert len(received) == 1

    def test_reply_disarms_timer(self, correlator, scheduler):
        received = []
        correlator.register(0, received.append, timeout=1.0)

        correlator.dispatch(BridgeReply(reply_id=0))

        assert scheduler.armed == []
        assert correlator.expire(0) is False
        assert len(received) == 1


class TestCancel:

    def test_cancelled_request_never_fires(self, correlator, scheduler):
        received = []
        pending = correlator.register(0, received.append, timeout=1.0)

        assert pending.pending is True
        assert pending.cancel() is True

        assert pending.pending is False
        assert scheduler.armed == []
        assert correlator.dispatch(BridgeReply(reply_id=0)) is False
        assert received == []

    def test_cancel_twice(self, correlator):
        pending = correlator.register(0, lambda r: None)
        pending.cancel()

        assert pending.cancel() is False

    def test_clear_drops_everything(self, correlator, scheduler):
        received = []
        for reply_id in range(3):
            correlator.register(reply_id, received.append, timeout=1.0)

        correlator.clear()

        assert correlator.pending_count == 0
        assert scheduler.armed == []
        for reply_id in range(3):
            correlator.dispatch(BridgeReply(reply_id=reply_id))
        assert received == []


class TestAsyncioScheduler:

    def test_without_running_loop_returns_none(self):
        assert asyncio_scheduler(1.0, lambda: None) is None

    @pytest.mark.asyncio
    async def test_expires_on_running_loop(self):
        correlator = ReplyCorrelator()
        done = asyncio.get_running_loop().create_future()
        correlator.register(0, done.set_result, timeout=0.01)

        reply = await asyncio.wait_for(done, timeout=2.0)

        assert reply.error_code == TIMEOUT_ERROR_CODE

    @pytest.mark.asyncio
    async def test_reply_cancels_loop_timer(self):
        correlator = ReplyCorrelator()
        received = []
        correlator.register(0, received.append, timeout=0.01)

        correlator.dispatch(BridgeReply(reply_id=0))
        await asyncio.sleep(0.05)

        assert len(received) == 1
        assert received[0].is_error is False
