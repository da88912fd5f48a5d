"""
Listener dispatch - route inbound chat messages to registered pattern
listeners.

For each inbound message the dispatcher decides once whether the bot is
addressed, then walks the listeners in registration order. A listener runs
when its mention policy is satisfied and its pattern matches the text with
the bot's own mention removed. Handlers run in the background; a failing
handler is logged and never affects the other listeners.
"""

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Union

if TYPE_CHECKING:
    from .bot import Bot
    from .events import Event

logger = logging.getLogger(__name__)

# Used when a listener is registered without a pattern.
CATCH_ALL = re.compile(r".")

# Patterns that match any non-empty text; listeners using them never count
# as a match for the ``notfound`` check.
TRIVIAL_PATTERNS = {"", ".", ".*", ".+", "^", "^.*", "^.*$", "^.+$", "(.*)", "(.+)", "^(.*)$", "^(.+)$"}


@dataclass
class Listener:
    """A registered (pattern, handler, params) triple."""

    pattern: re.Pattern
    handler: Callable[..., Any]
    params: Dict[str, Any] = field(default_factory=dict)
    catch_all: bool = False

    @property
    def requires_mention(self) -> bool:
        return bool(self.params.get("mention"))


def compile_pattern(pattern: Union[str, re.Pattern, None]) -> Tuple[re.Pattern, bool]:
    """Return (compiled pattern, is catch-all)."""
    if pattern is None:
        return CATCH_ALL, True
    if isinstance(pattern, str):
        pattern = re.compile(pattern)
    return pattern, pattern is CATCH_ALL or pattern.pattern in TRIVIAL_PATTERNS


def name_pattern(name: str) -> re.Pattern:
    """Whole-word, case-insensitive match of the bot's name."""
    return re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)


def is_direct_channel(channel: Optional[str]) -> bool:
    return bool(channel) and channel.startswith("D")


def is_addressed(me: Dict[str, Any], text: Optional[str], channel: Optional[str]) -> bool:
    """
    Whether a message counts as directed at the bot.

    Messages in a direct-message channel always are. Elsewhere the text must
    contain the bot's name as a whole word or its user id.
    """
    if is_direct_channel(channel):
        return True
    if not text:
        return False

    name = me.get("name")
    if name and name_pattern(name).search(text):
        return True
    bot_id = me.get("id")
    return bool(bot_id) and bot_id in text


def strip_self_mention(me: Dict[str, Any], text: str) -> str:
    """Remove the first mention of the bot's name and its ``<@id>`` token."""
    bot_id = me.get("id")
    if bot_id:
        text = re.sub(r"<@" + re.escape(bot_id) + r"(?:\|[^>]*)?>:?", "", text, count=1)
    name = me.get("name")
    if name:
        text = name_pattern(name).sub("", text, count=1)
    return text.strip()


class Dispatcher:
    """Holds the listener registry of one bot and dispatches messages to it."""

    def __init__(self, bot: "Bot"):
        self.bot = bot
        self.listeners: List[Listener] = []

    def add(self, listener: Listener) -> Listener:
        self.listeners.append(listener)
        logger.debug(
            f"Registered listener {getattr(listener.handler, '__name__', listener.handler)!r} "
            f"for /{listener.pattern.pattern}/"
        )
        return listener

    def __len__(self) -> int:
        return len(self.listeners)

    def select(self, message: Dict[str, Any]) -> Tuple[bool, List[Tuple[Listener, re.Match]]]:
        """
        Decide addressing and pick the listeners that should fire.

        Returns ``(addressed, [(listener, match), ...])`` in registration order.
        """
        me = self.bot.directory.me
        text = message.get("text")
        addressed = is_addressed(me, text, message.get("channel"))

        stripped = strip_self_mention(me, text) if text else ""

        selected = []
        for listener in self.listeners:
            if not stripped:
                break
            if listener.requires_mention and not addressed:
                continue
            match = listener.pattern.search(stripped)
            if match:
                selected.append((listener, match))
        return addressed, selected

    def dispatch(self, message: "Event") -> list:
        """
        Fire every satisfied listener for ``message``.

        Emits ``notfound`` when the bot was addressed but no listener with a
        real pattern matched. Returns the scheduled handler tasks.
        """
        addressed, selected = self.select(message)

        tasks = []
        for listener, match in selected:
            event = message.clone(match=match)
            tasks.append(self.bot.spawn(self._invoke(listener, event), label="listener"))

        has_patterns = any(not listener.catch_all for listener in self.listeners)
        satisfied = any(not listener.catch_all for listener, _ in selected)
        if addressed and has_patterns and not satisfied:
            logger.debug(f"No listener matched {message.get('text')!r}")
            self.bot.emit("notfound", message)

        return tasks

    async def _invoke(self, listener: Listener, event: "Event"):
        try:
            await self.bot.hooks.run("hear", {**event, **listener.params})
            result = listener.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Listener {getattr(listener.handler, '__name__', listener.handler)!r} failed: {e}",
                exc_info=True,
            )
