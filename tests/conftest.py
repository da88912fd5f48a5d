"""Shared fixtures: a roster, a bot with mocked transports, and a fake duplex channel."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from slack_rtm_core.bot import Bot
from slack_rtm_core.directory import Directory

GROUP = "test-bot"
GROUPID = "G0123123"
DIRECTID = "D0123123"
NAME = "test"
SELFID = "U0SELF1"
USERNAME = "user"
USERID = "U123123"
USERICON = "icon"
IMID = "D123123"
NOIMUSERID = "U123124"
NOIMUSERNAME = "user-no-im"


class FakeConnection:
    """Records outbound frames; ``reply_with(frame)`` may return a reply to feed back."""

    def __init__(self, bot):
        self.bot = bot
        self.frames = []
        self.is_open = True
        self.reply_with = None

    async def send(self, raw):
        frame = json.loads(raw)
        self.frames.append(frame)
        if self.reply_with is not None:
            reply = self.reply_with(frame)
            if reply is not None:
                asyncio.get_running_loop().call_soon(self.bot.receive, reply)

    async def close(self):
        self.is_open = False


def ok_reply(timestamps=("0000", "1111", "2222", "3333")):
    """reply_with factory that acknowledges each frame with the next timestamp."""
    stamps = iter(timestamps)

    def reply(frame):
        return {"ok": True, "reply_to": frame["id"], "ts": next(stamps), "text": frame.get("text")}

    return reply


async def settle(rounds=10):
    """Let scheduled handler tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def directory():
    return Directory(
        users=[
            {"name": USERNAME, "id": USERID, "profile": {"image_48": USERICON}},
            {"name": NOIMUSERNAME, "id": NOIMUSERID},
        ],
        ims=[{"id": IMID, "user": USERID}],
        groups=[{"name": GROUP, "id": GROUPID}],
        channels=[],
        bots=[],
        me={"name": NAME, "id": SELFID, "profile": {"image_original": ""}},
    )


@pytest.fixture
def web():
    """Mocked Web API client."""
    client = MagicMock()
    client.call = AsyncMock(return_value={"ok": True})
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def bot(directory, web):
    b = Bot("xoxb-test", web_client=web, directory=directory)
    b.connection = FakeConnection(b)
    return b
