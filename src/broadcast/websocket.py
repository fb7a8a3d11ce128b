"""
WebSocket observer adapter for the Fan-out Hub.

Bridges the hub (called from the bus listener thread or a worker thread) to
a Starlette/FastAPI WebSocket living on the server's event loop:
- send() is thread-safe and never blocks; frames go through a bounded queue
- a writer coroutine drains the queue in order
- the observer reports not-ready once closed or while its buffer is full
"""

import asyncio
import logging
from typing import Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect


logger = logging.getLogger(__name__)


DEFAULT_MAX_PENDING_FRAMES = 100


class WebSocketObserver:
    """Observer backed by one WebSocket connection."""

    def __init__(
        self,
        websocket: WebSocket,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        max_pending: int = DEFAULT_MAX_PENDING_FRAMES,
    ):
        self.websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self._closed = False
        self._close_callbacks: list[Callable[[], None]] = []

    @property
    def is_ready(self) -> bool:
        return not self._closed and not self._outbox.full()

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, text: str) -> None:
        """Schedule a frame for delivery from any thread."""
        if self._closed:
            raise ConnectionError("WebSocket observer is closed")
        self._loop.call_soon_threadsafe(self._put, text)

    def _put(self, text: str) -> None:
        if self._closed:
            return
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            logger.debug("Observer buffer full, dropping frame")

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def close(self) -> None:
        """Mark closed and fire close callbacks once."""
        if self._closed:
            return
        self._closed = True

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Observer close callback failed")

    # =========================================================================
    # Connection Loop
    # =========================================================================

    async def run(self) -> None:
        """
        Serve the connection until the client disconnects.

        Incoming client frames are read and ignored; the channel is
        server-to-client only.
        """
        writer = asyncio.create_task(self._write_loop())
        try:
            while True:
                await self.websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self.close()
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

    async def _write_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self.websocket.send_text(text)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"WebSocket send failed, closing observer: {e}")
                self.close()
                return
