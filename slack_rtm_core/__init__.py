"""
slack-rtm-core: Slack real-time bot runtime with pattern listeners, reply
correlation and per-message lifecycle events.

Library usage:
    from slack_rtm_core import Bot

    bot = Bot(token=SLACK_BOT_TOKEN)

    @bot.listen(r"hello")
    async def hello(message):
        await message.reply("hi!")

    await bot.start()

Runner usage:
    from slack_rtm_core import BotConfig, BotRunner

    BotRunner(config=BotConfig(bot_name="Hello Bot", version="1.0.0"), setup=setup).start()
"""

from .bot import ApiNamespace, Bot
from .directory import Directory, TokenKind, token_kind
from .errors import (
    HookVeto,
    NotConnectedError,
    RemoteError,
    SlackApiError,
    SlackRTMError,
    UnresolvableReference,
)
from .events import Event, EventEmitter
from .formatting import preformat
from .handle import MessageHandle
from .hooks import HookPipeline
from .listeners import is_addressed, strip_self_mention
from .runner import BotConfig, BotRunner

__all__ = [
    "Bot",
    "ApiNamespace",
    "BotConfig",
    "BotRunner",
    "Directory",
    "TokenKind",
    "token_kind",
    "Event",
    "EventEmitter",
    "MessageHandle",
    "HookPipeline",
    "preformat",
    "is_addressed",
    "strip_self_mention",
    "SlackRTMError",
    "NotConnectedError",
    "UnresolvableReference",
    "RemoteError",
    "SlackApiError",
    "HookVeto",
]
__version__ = "0.1.0"
