"""
HookPipeline - ordered before-hooks that every public bot operation runs through.

A hook handler receives the operation's context dict (the outbound parameters
merged with any caller-supplied extras). It may inspect it, mutate it in place,
or raise to abort the operation before its side effect happens.

Usage:
    bot = Bot(token)

    @bot.hooks.register("send_message")
    async def audit(ctx):
        logger.info(f"sending to {ctx['channel']}")

    def no_spam(ctx):
        if "spam" in ctx.get("text", ""):
            raise HookVeto("spam")

    bot.hooks.register("send_message", no_spam)
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

HookHandler = Callable[[Dict[str, Any]], Any]


class HookPipeline:
    """Named hook points, each an ordered list of handlers."""

    def __init__(self):
        self._hooks: Dict[str, List[HookHandler]] = {}

    def register(self, name: str, handler: Optional[HookHandler] = None):
        """
        Append a handler to the hook point ``name``.

        Without ``handler`` this returns a decorator.
        """
        if handler is None:
            def decorator(fn: HookHandler) -> HookHandler:
                self.register(name, fn)
                return fn
            return decorator

        self._hooks.setdefault(name, []).append(handler)
        logger.debug(f"Registered hook {getattr(handler, '__name__', handler)!r} on {name!r}")
        return handler

    def handlers(self, name: str) -> List[HookHandler]:
        return list(self._hooks.get(name, []))

    async def run(self, name: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run every handler of ``name`` in registration order.

        Handlers run one after another, so a later handler sees whatever an
        earlier one left in ``context``. The first exception aborts the run
        and propagates to the caller.
        """
        for handler in self.handlers(name):
            result = handler(context)
            if inspect.isawaitable(result):
                await result
        return context

    def run_sync(self, name: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Same as ``run`` for synchronous operations (lookups, registration).

        Handlers on these hook points must be plain functions.
        """
        for handler in self.handlers(name):
            result = handler(context)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(
                    f"Hook {name!r} guards a synchronous operation; "
                    f"{getattr(handler, '__name__', handler)!r} must not be async"
                )
        return context

    def __contains__(self, name: str) -> bool:
        return bool(self._hooks.get(name))
