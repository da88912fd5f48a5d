"""Tests for slack_rtm_core.events"""

import pytest

from slack_rtm_core.events import Event, EventEmitter, build_injected, event_names

from .conftest import GROUPID, ok_reply, settle


class TestEventEmitter:
    def test_handlers_run_in_subscription_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("open", lambda: calls.append(1))
        emitter.on("open", lambda: calls.append(2))

        emitter.emit("open")

        assert calls == [1, 2]

    def test_failing_handler_does_not_stop_others(self):
        emitter = EventEmitter()
        calls = []

        def broken(value):
            raise RuntimeError("boom")

        emitter.on("x", broken)
        emitter.on("x", calls.append)

        emitter.emit("x", 5)

        assert calls == [5]

    def test_once(self):
        emitter = EventEmitter()
        calls = []
        emitter.once("x", calls.append)

        emitter.emit("x", 1)
        emitter.emit("x", 2)

        assert calls == [1]
        assert emitter.listener_count("x") == 0

    def test_off(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("x", calls.append)

        assert emitter.off("x", calls.append) is True
        assert emitter.off("x", calls.append) is False
        emitter.emit("x", 1)

        assert calls == []

    @pytest.mark.asyncio
    async def test_coroutine_handlers_become_tasks(self):
        emitter = EventEmitter()
        calls = []

        @emitter.on("x")
        async def handler(value):
            calls.append(value)

        tasks = emitter.emit("x", "a")
        await tasks[0]
        await settle()

        assert calls == ["a"]
        assert not emitter._tasks

    @pytest.mark.asyncio
    async def test_failed_task_is_logged(self, caplog):
        emitter = EventEmitter()

        async def broken():
            raise RuntimeError("task boom")

        emitter.on("x", broken)
        emitter.emit("x")
        await settle()

        assert "task boom" in caplog.text


class TestEventNames:
    def test_plain_type(self):
        assert event_names({"type": "presence_change"}) == ["presence_change"]

    def test_message_subtype_fans_out(self):
        assert event_names({"type": "message", "subtype": "me_message"}) == ["message", "me_message"]

    def test_untyped_frame(self):
        assert event_names({"reply_to": 1, "ok": True}) == []


class TestBuildInjected:
    def test_message(self):
        assert build_injected("message", {"ts": "1"}) == {"type": "message", "ts": "1"}

    def test_message_deleted(self):
        frame = build_injected("message_deleted", {"ts": "something"})
        assert frame["subtype"] == "message_deleted"
        assert frame["deleted_ts"] == "something"
        assert frame["hidden"] is True

    def test_message_changed(self):
        frame = build_injected("message_changed", {"ts": "something", "message": {"text": "new"}})
        assert frame["hidden"] is True
        assert frame["message"] == {"ts": "something", "text": "new"}

    def test_other_subtype(self):
        frame = build_injected("me_message", {"ts": "x"})
        assert frame == {"type": "message", "ts": "x", "subtype": "me_message"}


class TestInject:
    def test_deleted_emits_subtype_and_message(self, bot):
        seen = []
        bot.on("message_deleted", lambda e: seen.append(("deleted", e["ts"], e["hidden"])))
        bot.on("message", lambda e: seen.append(("message", e["subtype"])))

        bot.inject("message_deleted", {"ts": "something"})

        assert ("deleted", "something", True) in seen
        assert ("message", "message_deleted") in seen

    def test_subtype_event(self, bot):
        seen = []
        bot.on("me_message", lambda e: seen.append(e["ts"]))

        bot.inject("me_message", {"ts": "something"})

        assert seen == ["something"]

    def test_inject_hook_can_amend_frame(self, bot):
        seen = []
        bot.hooks.register("inject", lambda frame: frame.update(channel=GROUPID))
        bot.on("message", lambda e: seen.append(e["channel"]))

        bot.inject("message", {"ts": "1"})

        assert seen == [GROUPID]


class TestEvent:
    def test_target_of_message(self, bot):
        event = Event(bot, {"channel": GROUPID, "ts": "1"})
        assert event.target == (GROUPID, "1")

    def test_target_of_reaction(self, bot):
        event = Event(bot, {"type": "reaction_added", "item": {"channel": GROUPID, "ts": "2"}})
        assert event.target == (GROUPID, "2")

    def test_clone_keeps_bot_and_adds_fields(self, bot):
        event = Event(bot, {"text": "hi"})
        copy = event.clone(match="m")
        assert copy.bot is bot
        assert copy["match"] == "m"
        assert "match" not in event

    @pytest.mark.asyncio
    async def test_reply_sends_to_same_channel(self, bot):
        bot.connection.reply_with = ok_reply()
        event = Event(bot, {"channel": GROUPID, "ts": "1", "text": "hi"})

        handle = await event.reply("hello")

        assert bot.connection.frames[0]["channel"] == GROUPID
        assert bot.connection.frames[0]["text"] == "hello"
        assert handle.ts == "0000"

    @pytest.mark.asyncio
    async def test_react_uses_reactions_add(self, bot, web):
        event = Event(bot, {"channel": GROUPID, "ts": "1"})

        await event.react(":rocket:")

        web.call.assert_awaited_once_with(
            "reactions.add", {"channel": GROUPID, "timestamp": "1", "name": "rocket"}
        )
