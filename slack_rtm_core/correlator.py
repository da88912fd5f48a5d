"""
RequestCorrelator - match replies on the duplex channel to the calls that
caused them.

Every outbound frame gets a fresh integer ``id``; the service answers with a
frame whose ``reply_to`` equals that id. Pending calls are kept in a dict of
futures, so any number of calls can be in flight and each caller gets exactly
its own reply, whatever order the replies arrive in.

There is no timeout: a call whose reply never arrives stays pending until the
caller gives up (cancelling the await removes it).
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Set

from .errors import RemoteError

logger = logging.getLogger(__name__)

FrameSender = Callable[[str], Awaitable[None]]


class RequestCorrelator:
    """Assigns correlation ids and resolves pending calls from inbound replies."""

    def __init__(self, transmit: FrameSender):
        self._transmit = transmit
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        # ids handed out by send() whose future nobody has asked for yet
        self._unclaimed: Set[int] = set()
        self._settled: Dict[int, asyncio.Future] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, reply_id: int) -> bool:
        return reply_id in self._pending

    async def send(self, payload: Dict[str, Any], expect_reply: bool = True) -> int:
        """
        Transmit ``payload`` with a fresh ``id`` and return the id at once.

        The pending slot exists before the frame leaves, and a reply that
        arrives before ``wait_for_reply`` is called is kept for it. A kept
        reply stays until ``wait_for_reply`` collects it, so pass
        ``expect_reply=False`` when nobody will.
        """
        reply_id = next(self._ids)
        if expect_reply:
            self._create(reply_id)
            self._unclaimed.add(reply_id)
        await self._transmit_frame(reply_id, payload)
        return reply_id

    async def request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send ``payload`` and wait for its reply."""
        reply_id = next(self._ids)
        future = self._create(reply_id)
        await self._transmit_frame(reply_id, payload)
        return await future

    def wait_for_reply(self, reply_id: int) -> "asyncio.Future[Dict[str, Any]]":
        """Future that completes with the reply to ``reply_id``."""
        self._unclaimed.discard(reply_id)
        settled = self._settled.pop(reply_id, None)
        if settled is not None:
            return settled
        return self._pending.get(reply_id) or self._create(reply_id)

    def feed(self, message: Dict[str, Any]) -> bool:
        """
        Offer an inbound frame; return True if it settled a pending call.

        A reply without ``ok`` counts as success (some replies omit it).
        """
        reply_id = message.get("reply_to")
        if reply_id is None:
            return False

        future = self._pending.pop(reply_id, None)
        if future is None or future.done():
            return False

        payload = dict(message)
        if "ok" not in payload or payload["ok"]:
            logger.debug(f"Reply {reply_id} succeeded")
            future.set_result(payload)
        else:
            logger.warning(f"Reply {reply_id} failed: {payload.get('error')}")
            future.set_exception(RemoteError(payload))

        if reply_id in self._unclaimed:
            self._unclaimed.discard(reply_id)
            self._settled[reply_id] = future
            # marks a stored failure as retrieved; awaiting it still raises
            future.exception()
        return True

    def _create(self, reply_id: int) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(lambda f: self._forget(reply_id, f))
        self._pending[reply_id] = future
        return future

    def _forget(self, reply_id: int, future: asyncio.Future):
        if self._pending.get(reply_id) is future:
            del self._pending[reply_id]

    async def _transmit_frame(self, reply_id: int, payload: Dict[str, Any]):
        frame = {**payload, "id": reply_id}
        logger.debug(f"Sending frame {reply_id} ({frame.get('type')})")
        try:
            await self._transmit(json.dumps(frame))
        except Exception:
            self._unclaimed.discard(reply_id)
            future = self._pending.pop(reply_id, None)
            if future is not None:
                future.cancel()
            raise
