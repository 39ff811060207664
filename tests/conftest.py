"""
Pytest fixtures for StreamGate tests
"""
import asyncio
import socketserver
import threading
from collections import namedtuple

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from streamgate.gateway.app import create_app
from streamgate.gateway.config import GatewayConfig
from streamgate.tunnel.identity import parse_credential

TEST_UUID = "0c1f5a3e-9b2d-4e6f-8a7b-1c2d3e4f5a6b"
TEST_PATH = "/api/v1/stream"

Address = namedtuple("Address", ["host", "port"])


@pytest.fixture
def config():
    """Gateway config with a known credential"""
    return GatewayConfig(UUID=TEST_UUID, WS_PATH=TEST_PATH, SUB_PATH="/sub")


@pytest.fixture
def credential():
    return parse_credential(TEST_UUID)


@pytest.fixture
def client(config):
    """Test client running the app lifespan"""
    app = create_app(config)
    with TestClient(app) as client:
        yield client


class _EchoHandler(socketserver.BaseRequestHandler):
    def handle(self):
        while True:
            data = self.request.recv(4096)
            if not data:
                break
            self.request.sendall(data)


class _ThreadedServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


@pytest.fixture
def echo_server():
    """Threaded TCP echo server on loopback; yields its port"""
    server = _ThreadedServer(("127.0.0.1", 0), _EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


# =============================================================================
# Async helpers for driving sessions directly
# =============================================================================


class FakeWebSocket:
    """In-memory stand-in for an accepted FastAPI WebSocket"""

    def __init__(self, host: str = "203.0.113.7", port: int = 50000):
        self.client = Address(host, port)
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[bytes] = []
        self.closed = asyncio.Event()
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def feed_text(self, text: str) -> None:
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self) -> None:
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def receive(self) -> dict:
        message = await self._incoming.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_bytes(self, data: bytes) -> None:
        self.sent.append(bytes(data))

    async def close(self, code: int = 1000) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self.closed.set()


class DestinationConnection:
    def __init__(self, writer: asyncio.StreamWriter):
        self.writer = writer
        self.received = bytearray()
        self.eof = False


class LoopbackDestination:
    """Loopback TCP server recording what each accepted connection receives"""

    def __init__(self, greeting: bytes = b""):
        self.greeting = greeting
        self.connections: list[DestinationConnection] = []
        self.server = None
        self.port = None

    async def start(self) -> "LoopbackDestination":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader, writer):
        conn = DestinationConnection(writer)
        self.connections.append(conn)
        if self.greeting:
            writer.write(self.greeting)
            await writer.drain()
        while True:
            try:
                data = await reader.read(4096)
            except ConnectionError:
                break
            if not data:
                break
            conn.received.extend(data)
        conn.eof = True

    async def close(self) -> None:
        for conn in self.connections:
            conn.writer.close()
        self.server.close()
        await self.server.wait_closed()


def recording_connector(port: int, calls: list):
    """Dialer that records the requested address and connects to loopback"""

    async def connect(host: str, requested_port: int):
        calls.append((host, requested_port))
        return await asyncio.open_connection("127.0.0.1", port)

    return connect


async def until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
