"""
Bot - one real-time connection to Slack and the operations around it.

Usage:
    bot = Bot(token=os.environ["SLACK_BOT_TOKEN"])

    @bot.listen(r"deploy (\\w+)")
    async def deploy(message):
        msg = await message.reply(f"deploying {message['match'].group(1)}...")
        msg.on("reaction_added", lambda event: logger.info(event["reaction"]))

    await bot.start()

Inbound frames are processed one at a time by ``receive``: a reply settles
its pending call, a ``message`` is dispatched to pattern listeners, and edit /
delete / reaction events are routed to the MessageHandle they refer to.
Every public operation first runs the hook point of the same name.
"""

import asyncio
import functools
import logging
import random as _random
import re
from typing import Any, Callable, Dict, List, Optional, Union

from .connection import RTMConnection
from .correlator import RequestCorrelator
from .directory import Directory, TokenKind, token_kind
from .errors import NotConnectedError, UnresolvableReference
from .events import Event, EventEmitter, build_injected, event_names
from .formatting import preformat
from .handle import LIFECYCLE_EVENTS, LifecycleRouter, MessageHandle
from .hooks import HookPipeline
from .listeners import Dispatcher, Listener, compile_pattern
from .transport import API_URL, SlackWebClient

logger = logging.getLogger(__name__)

EMOJI_ICON = re.compile(r":\w+:")


class ApiNamespace:
    """Attribute access builds a method name: ``bot.api.chat.postMessage(**params)``."""

    def __init__(self, bot: "Bot", method: str = ""):
        self._bot = bot
        self._method = method

    def __getattr__(self, name: str) -> "ApiNamespace":
        if name.startswith("_"):
            raise AttributeError(name)
        return ApiNamespace(self._bot, f"{self._method}.{name}" if self._method else name)

    async def __call__(self, **params):
        return await self._bot.call(self._method, params)

    def __repr__(self) -> str:
        return f"<ApiNamespace {self._method or '*'}>"


class Bot(EventEmitter):
    """
    A Slack bot on the real-time messaging API.

    The bot owns every registry it uses (roster, hooks, listeners, pending
    calls, message handles), so several bots can share one process.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: str = API_URL,
        ping_interval: Optional[float] = None,
        web_client: Optional[SlackWebClient] = None,
        directory: Optional[Directory] = None,
    ):
        super().__init__()
        self.token = token
        self.web = web_client or SlackWebClient(token, api_url=api_url)
        self.directory = directory or Directory()
        self.hooks = HookPipeline()
        self.dispatcher = Dispatcher(self)
        self.lifecycle = LifecycleRouter()
        self.correlator = RequestCorrelator(self._transmit)
        self.connection: Optional[RTMConnection] = None
        self.ping_interval = ping_interval
        self.globals: Dict[str, Any] = {}
        self.team: Dict[str, Any] = {}
        self.api = ApiNamespace(self)
        self._pinger: Optional[asyncio.Task] = None

        self.on("message", self.dispatcher.dispatch)
        for event_type in LIFECYCLE_EVENTS:
            self.on(event_type, functools.partial(self.lifecycle.route, event_type))
        self.on("user_change", lambda event: self.directory.apply_change("users", event.get("user") or {}))
        self.on("bot_changed", lambda event: self.directory.apply_change("bots", event.get("bot") or {}))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def start(self, **rtm_params) -> Dict[str, Any]:
        """Call ``rtm.start``, load the roster it returns and connect."""
        ctx = await self.hooks.run("start", dict(rtm_params))
        data = await self.web.call("rtm.start", ctx)

        self.directory = Directory.from_rtm_start(data)
        self.team = data.get("team") or {}
        logger.info(
            f"Loaded roster for {self.directory.me.get('name')}: "
            f"{len(self.directory.users)} users, {len(self.directory.channels)} channels"
        )

        await self.connect(data["url"])
        return data

    async def connect(self, url: str):
        """Open the duplex channel to ``url`` and start processing frames."""
        ctx = await self.hooks.run("connect", {"url": url})
        self.connection = RTMConnection(ctx["url"], self.receive, on_close=self._on_close)
        await self.connection.open()

        if self.ping_interval:
            self._pinger = asyncio.create_task(self._ping_loop())
        self.emit("open")

    async def close(self):
        await self.hooks.run("close", {})
        if self._pinger is not None:
            self._pinger.cancel()
            self._pinger = None
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
        await self.web.aclose()

    def _on_close(self):
        if self._pinger is not None:
            self._pinger.cancel()
            self._pinger = None
        self.emit("close")

    async def _transmit(self, raw: str):
        if self.connection is None or not self.connection.is_open:
            raise NotConnectedError("Call connect() before sending over the real-time channel")
        await self.connection.send(raw)

    async def _ping_loop(self):
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await self.correlator.send({"type": "ping"}, expect_reply=False)
            except NotConnectedError:
                return
            except Exception as e:
                logger.warning(f"Ping failed: {e}")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def receive(self, frame: Dict[str, Any]) -> Event:
        """
        Classify and route one inbound frame to completion.

        Emits ``raw_message`` for every frame, then the frame's type, then
        (for messages with a subtype) the subtype.
        """
        event = frame if isinstance(frame, Event) else Event(self, frame)
        if event.get("type") == "message" and event.get("text"):
            event["preformatted"] = preformat(event["text"], self.directory)

        self.correlator.feed(event)
        self.emit("raw_message", event)
        for name in event_names(event):
            self.emit(name, event)
        return event

    def inject(self, kind: str, data: Optional[Dict[str, Any]] = None) -> Event:
        """Feed a synthetic ``kind`` event through the normal receive path."""
        frame = build_injected(kind, data or {})
        self.hooks.run_sync("inject", frame)
        return self.receive(frame)

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    def find(self, token: str) -> Optional[Dict[str, Any]]:
        """Find a user, channel, group, IM or bot by name or id."""
        ctx = self.hooks.run_sync("find", {"token": token})
        return self.directory.find(ctx["token"])

    def all(self) -> List[Dict[str, Any]]:
        """Every user, group, channel, IM and bot, in that order."""
        self.hooks.run_sync("all", {})
        return self.directory.all()

    def token_kind(self, token: str) -> TokenKind:
        ctx = self.hooks.run_sync("token_kind", {"token": token})
        return token_kind(ctx["token"])

    def _lookup(self, token: str) -> Dict[str, Any]:
        """``find`` by name, falling back to an exact id match."""
        entry = self.find(token) or self.directory.get(token)
        if entry is None:
            raise UnresolvableReference(token)
        return entry

    def _resolve_channel(self, token: str) -> str:
        if token_kind(token) is TokenKind.ID:
            return token
        return self._lookup(token)["id"]

    async def _resolve_destination(self, token: str) -> str:
        """Channel id to post to; users are mapped to their IM channel."""
        if token_kind(token) is TokenKind.ID:
            entry = self.directory.get(token)
            if entry is None or not self.directory.is_user(entry):
                return token
        else:
            entry = self._lookup(token)
            if not self.directory.is_user(entry):
                return entry["id"]

        im = self.directory.im_for_user(entry["id"])
        if im is not None:
            return im["id"]
        opened = await self.call("im.open", {"user": entry["id"]})
        return opened["channel"]["id"]

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def hear(self, pattern=None, handler: Optional[Callable[..., Any]] = None, **params):
        """
        Run ``handler`` for every message whose text matches ``pattern``.

        ``pattern`` may be a string or compiled regex; pass only a handler to
        match every message. Without a handler this returns a decorator.
        """
        if callable(pattern) and handler is None:
            pattern, handler = None, pattern
        if handler is None:
            def decorator(fn):
                self.hear(pattern, fn, **params)
                return fn
            return decorator

        compiled, catch_all = compile_pattern(pattern)
        ctx = self.hooks.run_sync("register", {"pattern": compiled, "handler": handler, **params})
        self.dispatcher.add(Listener(ctx["pattern"], ctx["handler"], params, catch_all))
        return self

    def listen(self, pattern=None, handler: Optional[Callable[..., Any]] = None, **params):
        """Like ``hear`` but only for messages addressed to the bot."""
        params["mention"] = True
        return self.hear(pattern, handler, **params)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(
        self, channel: Union[str, List[str]], text: str, **params
    ) -> Union[MessageHandle, List[MessageHandle]]:
        """
        Send ``text`` to a channel, group, IM or user (by name or id).

        A list of targets sends to each concurrently. ``@name`` targets and
        ``websocket=False`` go through ``chat.postMessage``; everything else
        goes over the real-time channel.
        """
        if isinstance(channel, (list, tuple)):
            return list(await asyncio.gather(*(self.send_message(ch, text, **params) for ch in channel)))

        options = {**self.globals, **params}
        websocket = options.pop("websocket", True) and not channel.startswith("@")

        ctx = await self.hooks.run(
            "send_message", {"channel": channel, "text": text, **options, "websocket": websocket}
        )
        websocket = ctx.pop("websocket") and not ctx["channel"].startswith("@")
        if not ctx["channel"].startswith("@"):
            # resolving a user may open an IM
            ctx["channel"] = await self._resolve_destination(ctx["channel"])

        if websocket:
            reply = await self.call("message", ctx, websocket=True)
        else:
            reply = await self.call("chat.postMessage", ctx)
        return MessageHandle(self, reply.get("channel") or ctx["channel"], reply.get("ts"), {**ctx, **reply})

    async def send_as_user(self, user: str, channel: str, text: str, **params) -> MessageHandle:
        """Post ``text`` with ``user``'s name and avatar."""
        entry = self._lookup(user)
        profile = entry.get("profile") or {}

        ctx = await self.hooks.run("send_as_user", {
            "channel": channel,
            "text": text,
            "username": entry.get("name"),
            "icon_url": profile.get("image_48"),
            **params,
        })
        ctx["channel"] = self._resolve_channel(ctx["channel"])
        reply = await self.call("chat.postMessage", ctx)
        return MessageHandle(self, reply.get("channel") or ctx["channel"], reply.get("ts"), {**ctx, **reply})

    async def update_message(self, channel: str, ts: str, text: str, **params) -> MessageHandle:
        """Edit a message; the returned handle has the edited message's identity."""
        ctx = await self.hooks.run("update_message", {"channel": channel, "ts": ts, "text": text, **params})
        ctx["channel"] = self._resolve_channel(ctx["channel"])
        reply = await self.call("chat.update", ctx)
        return MessageHandle(
            self, reply.get("channel") or ctx["channel"], reply.get("ts") or ctx["ts"], {**ctx, **reply}
        )

    async def delete_message(self, channel: str, ts: str, **params) -> Dict[str, Any]:
        ctx = await self.hooks.run("delete_message", {"channel": channel, "ts": ts, **params})
        ctx["channel"] = self._resolve_channel(ctx["channel"])
        return await self.call("chat.delete", ctx)

    async def react(self, channel: str, ts: str, emoji: str, **params) -> Dict[str, Any]:
        """Add a reaction; ``emoji`` may be given with or without colons."""
        ctx = await self.hooks.run("react", {
            "channel": channel,
            "timestamp": ts,
            "name": emoji.strip(":"),
            **params,
        })
        ctx["channel"] = self._resolve_channel(ctx["channel"])
        return await self.call("reactions.add", ctx)

    async def emojis(self) -> Dict[str, Any]:
        """The team's custom emoji (``emoji.list``)."""
        await self.hooks.run("emojis", {})
        return await self.call("emoji.list")

    def icon(self, icon: Optional[str] = None) -> "Bot":
        """
        Set the icon used for outgoing messages.

        ``:emoji:`` sets ``icon_emoji``, anything else is taken as a URL, and
        a falsy value clears both.
        """
        ctx = self.hooks.run_sync("icon", {"icon": icon})
        icon = ctx.get("icon")

        if not icon:
            self.globals.pop("icon_emoji", None)
            self.globals.pop("icon_url", None)
        elif EMOJI_ICON.search(icon):
            self.globals["icon_emoji"] = icon
            self.globals.pop("icon_url", None)
        else:
            self.globals["icon_url"] = icon
            self.globals.pop("icon_emoji", None)
        return self

    def random(self, *options):
        """Pick one of ``options``; list arguments are flattened."""
        flat = []
        for option in options:
            if isinstance(option, (list, tuple)):
                flat.extend(option)
            else:
                flat.append(option)
        ctx = self.hooks.run_sync("random", {"options": flat})
        return _random.choice(ctx["options"]) if ctx["options"] else None

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None, websocket: bool = False):
        """
        Call ``method`` over HTTP, or over the real-time channel with
        ``websocket=True`` (``method`` is then the frame type).
        """
        ctx = await self.hooks.run(
            "call", {"method": method, "params": dict(params or {}), "websocket": websocket}
        )
        method, params = ctx["method"], ctx["params"]

        if ctx["websocket"]:
            return await self.correlator.request({"type": method, **params})
        return await self.web.call(method, params)

    async def wait_for_reply(self, reply_id: int) -> Dict[str, Any]:
        """Wait for the reply to a frame sent with ``correlator.send``."""
        future = self.correlator.wait_for_reply(reply_id)
        await self.hooks.run("wait_for_reply", {"reply_id": reply_id})
        return await future
