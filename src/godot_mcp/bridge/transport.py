from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed as WebSocketClosed

from ..shared.errors import ConnectionClosed

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], None]
CloseCallback = Callable[[Optional[BaseException]], None]


class WebSocketChannel:
    """One duplex WebSocket to the editor plugin.

    ``on_message`` receives every inbound text frame. ``on_close`` fires
    exactly once after a successful ``open()``, whatever ends the socket:
    peer close, network error, ``close()`` or ``terminate()``.
    """

    def __init__(self, url: str, on_message: MessageCallback, on_close: CloseCallback) -> None:
        self.url = url
        self._on_message = on_message
        self._on_close = on_close
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def open(self) -> None:
        # The caller owns the connect deadline; keepalive pings are off like the editor side.
        self._ws = await connect(self.url, open_timeout=None, ping_interval=None, max_size=None)
        self._reader = asyncio.create_task(self._read_loop(self._ws))

    async def send(self, frame: str) -> None:
        if not self.is_open:
            raise ConnectionClosed("WebSocket not connected")
        try:
            await self._ws.send(frame)
        except WebSocketClosed as exc:
            raise ConnectionClosed(f"WebSocket closed while sending: {exc}") from exc

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)

    async def terminate(self) -> None:
        if self._ws is not None:
            self._ws.transport.abort()
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)

    async def _read_loop(self, ws: ClientConnection) -> None:
        error: Optional[BaseException] = None
        try:
            async for frame in ws:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                try:
                    self._on_message(frame)
                except Exception:
                    logger.exception("Dropping inbound frame after handler error")
        except WebSocketClosed as exc:
            error = exc
        except OSError as exc:
            logger.error("WebSocket error: %s", exc)
            error = exc
        finally:
            self._on_close(error)
