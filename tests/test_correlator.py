"""Tests for slack_rtm_core.correlator"""

import asyncio
import gc
import json

import pytest

from slack_rtm_core.correlator import RequestCorrelator
from slack_rtm_core.errors import RemoteError

from .conftest import settle


class Wire:
    """Collects transmitted frames."""

    def __init__(self):
        self.frames = []

    async def __call__(self, raw):
        self.frames.append(json.loads(raw))


@pytest.fixture
def wire():
    return Wire()


@pytest.fixture
def correlator(wire):
    return RequestCorrelator(wire)


class TestSend:
    @pytest.mark.asyncio
    async def test_merges_fresh_id_into_payload(self, correlator, wire):
        first = await correlator.send({"type": "message", "text": "a"})
        second = await correlator.send({"type": "message", "text": "b"})

        assert second > first
        assert wire.frames[0] == {"type": "message", "text": "a", "id": first}
        assert wire.frames[1]["id"] == second
        assert correlator.pending_count == 2

    @pytest.mark.asyncio
    async def test_payload_cannot_override_id(self, correlator, wire):
        reply_id = await correlator.send({"type": "message", "id": 999})
        assert wire.frames[0]["id"] == reply_id

    @pytest.mark.asyncio
    async def test_without_expecting_reply(self, correlator):
        await correlator.send({"type": "ping"}, expect_reply=False)
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_transmit_failure_clears_pending(self):
        async def broken(raw):
            raise ConnectionError("down")

        correlator = RequestCorrelator(broken)

        with pytest.raises(ConnectionError):
            await correlator.send({"type": "message"})
        assert correlator.pending_count == 0


class TestReplies:
    @pytest.mark.asyncio
    async def test_out_of_order_replies_reach_their_callers(self, correlator, wire):
        tasks = [
            asyncio.ensure_future(correlator.request({"type": "message", "text": str(i)}))
            for i in range(3)
        ]
        await asyncio.sleep(0)
        ids = [frame["id"] for frame in wire.frames]

        for reply_id in reversed(ids):
            correlator.feed({"reply_to": reply_id, "ok": True, "ts": f"ts-{reply_id}"})

        results = await asyncio.gather(*tasks)
        assert [r["ts"] for r in results] == [f"ts-{i}" for i in ids]
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_missing_ok_is_success(self, correlator):
        reply_id = await correlator.send({"type": "ping"})
        correlator.feed({"reply_to": reply_id, "type": "pong"})

        result = await correlator.wait_for_reply(reply_id)
        assert result["type"] == "pong"

    @pytest.mark.asyncio
    async def test_ok_false_is_remote_error_with_payload(self, correlator):
        reply_id = await correlator.send({"type": "message"})
        correlator.feed({"reply_to": reply_id, "ok": False, "error": {"msg": "no"}})

        with pytest.raises(RemoteError) as exc_info:
            await correlator.wait_for_reply(reply_id)
        assert exc_info.value.payload["ok"] is False
        assert exc_info.value.payload["reply_to"] == reply_id

    @pytest.mark.asyncio
    async def test_reply_before_wait_is_kept(self, correlator):
        """A reply that beats wait_for_reply is still delivered."""
        reply_id = await correlator.send({"type": "message"})
        assert correlator.feed({"reply_to": reply_id, "ok": True, "ts": "1"})

        result = await correlator.wait_for_reply(reply_id)
        assert result["ts"] == "1"

    @pytest.mark.asyncio
    async def test_unclaimed_failure_is_not_logged_as_unretrieved(self, wire, caplog):
        correlator = RequestCorrelator(wire)
        reply_id = await correlator.send({"type": "message"})
        correlator.feed({"reply_to": reply_id, "ok": False, "error": "no"})

        del correlator
        gc.collect()
        await settle()

        assert "never retrieved" not in caplog.text

    @pytest.mark.asyncio
    async def test_unclaimed_failure_still_raises_when_waited(self, correlator):
        reply_id = await correlator.send({"type": "message"})
        correlator.feed({"reply_to": reply_id, "ok": False, "error": "no"})

        with pytest.raises(RemoteError):
            await correlator.wait_for_reply(reply_id)

    @pytest.mark.asyncio
    async def test_settles_at_most_once(self, correlator):
        reply_id = await correlator.send({"type": "message"})
        future = correlator.wait_for_reply(reply_id)

        assert correlator.feed({"reply_to": reply_id, "ok": True, "ts": "first"}) is True
        assert correlator.feed({"reply_to": reply_id, "ok": False}) is False
        assert (await future)["ts"] == "first"

    @pytest.mark.asyncio
    async def test_unrelated_frames_are_ignored(self, correlator):
        reply_id = await correlator.send({"type": "message"})

        assert correlator.feed({"type": "message", "text": "hi"}) is False
        assert correlator.feed({"reply_to": reply_id + 100, "ok": True}) is False
        assert correlator.is_pending(reply_id)

    @pytest.mark.asyncio
    async def test_unanswered_request_stays_pending(self, correlator):
        reply_id = await correlator.send({"type": "message"})
        future = correlator.wait_for_reply(reply_id)

        done, _ = await asyncio.wait([future], timeout=0.01)

        assert not done
        assert correlator.is_pending(reply_id)

    @pytest.mark.asyncio
    async def test_cancelled_wait_is_forgotten(self, correlator):
        task = asyncio.ensure_future(correlator.request({"type": "message"}))
        await asyncio.sleep(0)
        assert correlator.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert correlator.pending_count == 0
