"""
Inbound event plumbing: a small emitter, the Event dict handed to listeners,
and helpers that shape wire frames into the events the bot emits.
"""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set, Tuple

if TYPE_CHECKING:
    from .bot import Bot

logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Synchronous publish/subscribe keyed by event name.

    ``emit`` calls every handler in subscription order before returning.
    A handler that returns a coroutine has it scheduled as a task; the task is
    referenced until it finishes and its failure, if any, is logged. A handler
    that raises is logged and does not stop the remaining handlers.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable[..., Any]]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, name: str, handler: Optional[Callable[..., Any]] = None):
        """Subscribe ``handler`` to ``name``; without a handler, return a decorator."""
        if handler is None:
            def decorator(fn):
                self.on(name, fn)
                return fn
            return decorator

        self._handlers.setdefault(name, []).append(handler)
        return handler

    def once(self, name: str, handler: Callable[..., Any]):
        def wrapper(*args):
            self.off(name, wrapper)
            return handler(*args)

        wrapper.__wrapped__ = handler
        return self.on(name, wrapper)

    def off(self, name: str, handler: Callable[..., Any]) -> bool:
        handlers = self._handlers.get(name, [])
        for registered in handlers:
            if registered is handler or getattr(registered, "__wrapped__", None) is handler:
                handlers.remove(registered)
                return True
        return False

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))

    def emit(self, name: str, *args) -> List[asyncio.Task]:
        """Call every handler of ``name``; return tasks for coroutine handlers."""
        tasks = []
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(*args)
            except Exception:
                logger.exception(f"Handler for {name!r} event failed")
                continue
            if inspect.isawaitable(result):
                tasks.append(self.spawn(result, label=name))
        return tasks

    def spawn(self, awaitable, label: str = "background") -> asyncio.Task:
        """Run ``awaitable`` in the background, logging if it fails."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task):
            self._tasks.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                logger.error(f"Error in {label} handler: {error}", exc_info=error)

        task.add_done_callback(_done)
        return task


class Event(dict):
    """
    One inbound frame.

    A plain dict of the wire fields with ``reply`` and ``react`` helpers bound
    to the frame's channel and timestamp.
    """

    def __init__(self, bot: "Bot", data: Optional[Dict[str, Any]] = None, **extra):
        super().__init__(data or {}, **extra)
        self.bot = bot

    @property
    def target(self) -> Tuple[Optional[str], Optional[str]]:
        """(channel, ts) of the message this event is about."""
        item = self.get("item")
        if isinstance(item, dict) and "ts" in item:
            return item.get("channel"), item.get("ts")
        return self.get("channel"), self.get("ts") or self.get("timestamp")

    def clone(self, **extra) -> "Event":
        return Event(self.bot, self, **extra)

    async def reply(self, text: str, **params):
        channel, _ = self.target
        return await self.bot.send_message(channel, text, **params)

    async def react(self, emoji: str, **params):
        channel, ts = self.target
        return await self.bot.react(channel, ts, emoji, **params)

    async def update(self, text: str, **params):
        channel, ts = self.target
        return await self.bot.update_message(channel, ts, text, **params)

    async def delete(self, **params):
        channel, ts = self.target
        return await self.bot.delete_message(channel, ts, **params)


def event_names(frame: Dict[str, Any]) -> List[str]:
    """
    Names a frame is emitted under, in order.

    A message with a subtype fans out twice: once as ``message`` for listener
    dispatch and once under the subtype for handles and targeted listeners.
    """
    event_type = frame.get("type")
    if not event_type:
        return []
    names = [event_type]
    subtype = frame.get("subtype")
    if event_type == "message" and subtype:
        names.append(subtype)
    return names


def build_injected(kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Shape ``data`` into the wire frame Slack would send for ``kind``."""
    if kind == "message":
        return {"type": "message", **data}

    frame: Dict[str, Any] = {"type": "message", **data, "subtype": kind}
    if kind == "message_deleted":
        frame.setdefault("hidden", True)
        frame.setdefault("deleted_ts", data.get("ts"))
    elif kind == "message_changed":
        frame.setdefault("hidden", True)
        frame["message"] = {"ts": data.get("ts"), **(data.get("message") or {})}
    return frame
