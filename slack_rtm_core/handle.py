"""
MessageHandle - a message the bot has sent, identified by (channel, ts).

A handle is only created once the service has confirmed the message and
returned its timestamp. It exposes update / delete / react pre-filled with
its identity and lets callers subscribe to lifecycle events for exactly that
message:

    msg = await bot.send_message("general", "deploying...")
    msg.on("reaction_added", lambda event: print(event["reaction"]))
    await msg.update("deployed")
"""

import inspect
import logging
import weakref
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set, Tuple

if TYPE_CHECKING:
    from .bot import Bot
    from .events import Event

logger = logging.getLogger(__name__)

Identity = Tuple[Optional[str], Optional[str]]

# wire event type -> handle-scoped event name
LIFECYCLE_EVENTS = {
    "message_changed": "update",
    "message_deleted": "delete",
    "reaction_added": "reaction_added",
    "reaction_removed": "reaction_removed",
}


def lifecycle_identity(event_type: str, event: Dict[str, Any]) -> Identity:
    """(channel, ts) of the message a lifecycle event refers to."""
    if event_type in ("reaction_added", "reaction_removed"):
        item = event.get("item") or {}
        return item.get("channel"), item.get("ts")

    channel = event.get("channel")
    if event_type == "message_changed":
        message = event.get("message") or {}
        return channel, message.get("ts") or event.get("ts")
    if event_type == "message_deleted":
        return channel, event.get("deleted_ts") or event.get("ts")
    return channel, event.get("ts")


class MessageHandle:
    """A sent message: immutable identity, observable state, scoped actions."""

    def __init__(self, bot: "Bot", channel: str, ts: Optional[str], data: Optional[Dict] = None):
        self._bot = bot
        self._identity: Identity = (channel, ts)
        self.data: Dict[str, Any] = dict(data or {})
        self.text: Optional[str] = self.data.get("text")
        self.deleted = False
        self.reactions: List[str] = []
        self._subscribers: Dict[str, List[Callable[..., Any]]] = {}
        bot.lifecycle.track(self)

    @property
    def channel(self) -> Optional[str]:
        return self._identity[0]

    @property
    def ts(self) -> Optional[str]:
        return self._identity[1]

    @property
    def identity(self) -> Identity:
        return self._identity

    def __repr__(self) -> str:
        return f"<MessageHandle channel={self.channel} ts={self.ts}>"

    async def update(self, text: str, **params):
        return await self._bot.update_message(self.channel, self.ts, text, **params)

    async def delete(self, **params):
        return await self._bot.delete_message(self.channel, self.ts, **params)

    async def react(self, emoji: str, **params):
        return await self._bot.react(self.channel, self.ts, emoji, **params)

    async def reply(self, text: str, **params) -> "MessageHandle":
        """Send ``text`` to the same channel."""
        return await self._bot.send_message(self.channel, text, **params)

    def on(self, name: str, callback: Optional[Callable[..., Any]] = None):
        """Subscribe to ``update``, ``delete``, ``reaction_added`` or ``reaction_removed``."""
        if callback is None:
            def decorator(fn):
                self.on(name, fn)
                return fn
            return decorator

        if name not in LIFECYCLE_EVENTS.values():
            raise ValueError(f"Unknown message event {name!r}")
        self._subscribers.setdefault(name, []).append(callback)
        self._bot.lifecycle.pin(self)
        return self

    def off(self, name: str, callback: Callable[..., Any]) -> "MessageHandle":
        callbacks = self._subscribers.get(name, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not self.subscription_count:
            self._bot.lifecycle.unpin(self)
        return self

    @property
    def subscription_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def _apply(self, name: str, event: "Event"):
        if name == "update":
            message = event.get("message") or {}
            if "text" in message:
                self.text = message["text"]
        elif name == "delete":
            self.deleted = True
        elif name == "reaction_added":
            self.reactions.append(event.get("reaction"))
        elif name == "reaction_removed" and event.get("reaction") in self.reactions:
            self.reactions.remove(event.get("reaction"))

    def _fire(self, name: str, event: "Event") -> list:
        self._apply(name, event)
        tasks = []
        for callback in list(self._subscribers.get(name, [])):
            try:
                result = callback(event)
            except Exception:
                logger.exception(f"Message {name} callback failed for {self!r}")
                continue
            if inspect.isawaitable(result):
                tasks.append(self._bot.spawn(result, label=f"message {name}"))
        return tasks


class LifecycleRouter:
    """
    Routes edit / delete / reaction events to the handles with the same
    identity, and only to those.

    Every handle is tracked weakly so its state follows the server; a handle
    with subscribers is also pinned so it outlives the caller's reference.
    """

    def __init__(self):
        self._handles: Dict[Identity, List["weakref.ref[MessageHandle]"]] = {}
        self._pinned: Set[MessageHandle] = set()

    def __len__(self) -> int:
        return len(self._handles)

    def track(self, handle: MessageHandle):
        if handle.ts is None:
            return
        identity = handle.identity

        def _drop(ref):
            # the last handle for an identity takes its entry with it
            refs = self._handles.get(identity)
            if refs is None:
                return
            if ref in refs:
                refs.remove(ref)
            if not refs:
                del self._handles[identity]

        self._handles.setdefault(identity, []).append(weakref.ref(handle, _drop))

    def pin(self, handle: MessageHandle):
        self._pinned.add(handle)

    def unpin(self, handle: MessageHandle):
        self._pinned.discard(handle)

    def subscription_count(self) -> int:
        return sum(handle.subscription_count for handle in self._pinned)

    def handles_for(self, identity: Identity) -> List[MessageHandle]:
        handles = (ref() for ref in self._handles.get(identity, []))
        return [handle for handle in handles if handle is not None]

    def route(self, event_type: str, event: "Event") -> list:
        """Fire the handle-scoped event on every handle matching ``event``."""
        name = LIFECYCLE_EVENTS.get(event_type)
        if name is None:
            return []
        identity = lifecycle_identity(event_type, event)
        tasks = []
        if identity[1] is None:
            return tasks
        for handle in self.handles_for(identity):
            logger.debug(f"Routing {event_type} to {handle!r}")
            tasks.extend(handle._fire(name, event))
        return tasks
