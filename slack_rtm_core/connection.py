"""
RTMConnection - the duplex WebSocket channel to the real-time API.

Frames are JSON objects. The reader hands each decoded frame to
``on_frame`` and only reads the next one once that call has returned, so
frames are processed strictly in arrival order.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class RTMConnection:
    """One WebSocket connection and its reader task."""

    def __init__(
        self,
        url: str,
        on_frame: Callable[[Dict[str, Any]], None],
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.url = url
        self._on_frame = on_frame
        self._on_close = on_close
        self._ws = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def open(self):
        """Connect and start reading frames."""
        self._ws = await websockets.connect(self.url)
        logger.info(f"Connected to {self.url}")
        self._reader = asyncio.create_task(self._read_loop())

    async def send(self, raw: str):
        if self._ws is None:
            raise ConnectionError("WebSocket is not open")
        await self._ws.send(raw)

    async def _read_loop(self):
        try:
            async for raw in self._ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping undecodable frame: {raw[:200]!r}")
                    continue
                if not isinstance(frame, dict):
                    logger.warning(f"Skipping non-object frame: {frame!r}")
                    continue
                try:
                    self._on_frame(frame)
                except Exception:
                    logger.exception(f"Error handling frame of type {frame.get('type')!r}")
        except ConnectionClosed as e:
            logger.info(f"Connection closed: {e}")
        finally:
            self._ws = None
            if self._on_close:
                self._on_close()

    async def close(self):
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
