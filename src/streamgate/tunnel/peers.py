"""
The two endpoints a tunnel session couples.

Both wrappers expose the same guarded operations: writes are dropped
when the endpoint is no longer open, and close() may be called any
number of times.
"""

import asyncio

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from streamgate.tunnel.errors import PeerError
from streamgate.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Upgraded WebSocket Peer
# =============================================================================


class TransportPeer:
    """The upgraded WebSocket connection of a session."""

    def __init__(self, websocket: WebSocket):
        self.ws = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.ws.client_state == WebSocketState.CONNECTED
            and self.ws.application_state == WebSocketState.CONNECTED
        )

    async def receive(self) -> bytes | None:
        """
        Receive the next frame.

        Returns:
            Frame bytes (text frames are UTF-8 encoded), or None once the
            peer has disconnected.
        """
        if not self.is_open:
            return None
        try:
            message = await self.ws.receive()
        except (RuntimeError, OSError) as e:
            raise PeerError(f"WebSocket receive failed: {e}") from e

        if message["type"] == "websocket.disconnect":
            self._closed = True
            return None
        if message.get("bytes") is not None:
            return message["bytes"]
        if message.get("text") is not None:
            return message["text"].encode("utf-8")
        return b""

    async def send(self, data: bytes) -> bool:
        """
        Send one binary frame if the peer is still open.

        Returns:
            True if sent, False if dropped because the peer is closed.
        """
        if not self.is_open:
            return False
        try:
            await self.ws.send_bytes(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise PeerError(f"WebSocket send failed: {e}") from e
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.ws.application_state != WebSocketState.CONNECTED:
            return
        if self.ws.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.ws.close()
        except (RuntimeError, OSError) as e:
            logger.debug(f"[Transport] Close after peer gone: {e}")


# =============================================================================
# Destination TCP Peer
# =============================================================================


class DestinationPeer:
    """The outbound TCP connection of a session."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and not self.writer.is_closing()

    async def read(self, size: int) -> bytes:
        """Read up to `size` bytes; b"" means the destination closed."""
        try:
            return await self.reader.read(size)
        except OSError as e:
            raise PeerError(f"Destination read failed: {e}") from e

    async def write(self, data: bytes) -> bool:
        """
        Write bytes if the destination is still writable.

        Returns:
            True if written, False if dropped because the connection closed.
        """
        if not data:
            return True
        if not self.is_open:
            return False
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise PeerError(f"Destination write failed: {e}") from e
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"[Destination] Close did not complete cleanly: {e!r}")
