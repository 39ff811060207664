"""
Tunnel session state machine tests

Sessions are driven directly with an in-memory WebSocket and real
loopback TCP destinations.
"""
import asyncio
import socket
import struct

import pytest

from streamgate.models.enums import SessionState
from streamgate.tunnel.errors import DialFailure
from streamgate.tunnel.protocol import build_header
from streamgate.tunnel.session import TunnelSession

from conftest import FakeWebSocket, LoopbackDestination, recording_connector, until


def run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=10))


def test_ipv4_scenario(config, credential):
    """Dial 93.184.216.34:80, ack [1,0], forward the trailing request line"""

    async def scenario():
        dest = await LoopbackDestination().start()
        calls = []
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, calls))

        ws.feed(
            build_header(
                credential, 80, "93.184.216.34", version=1, payload=b"GET / HTTP/1.1\r\n"
            )
        )
        task = asyncio.create_task(session.run())

        await until(lambda: dest.connections and dest.connections[0].received)
        assert calls == [("93.184.216.34", 80)]
        assert ws.sent[0] == b"\x01\x00"
        assert bytes(dest.connections[0].received) == b"GET / HTTP/1.1\r\n"
        assert session.state == SessionState.RELAYING

        ws.disconnect()
        await task
        assert session.state == SessionState.CLOSED
        await dest.close()

    run(scenario())


def test_ack_precedes_destination_bytes(config, credential):
    """A destination that speaks first is still relayed after the ack"""

    async def scenario():
        dest = await LoopbackDestination(greeting=b"220 ready\r\n").start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 25, "mail.example.com", version=0))
        task = asyncio.create_task(session.run())

        await until(lambda: len(ws.sent) >= 2)
        assert ws.sent[0] == b"\x00\x00"
        assert b"".join(ws.sent[1:]) == b"220 ready\r\n"

        ws.disconnect()
        await task
        await dest.close()

    run(scenario())


@pytest.mark.parametrize("position", [0, 7, 15])
def test_credential_mismatch_closes_silently(config, credential, position):
    """No dial, no bytes to the peer, transport closed"""

    async def scenario():
        calls = []
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(1, calls))

        wrong = bytearray(credential)
        wrong[position] ^= 0xFF
        ws.feed(build_header(bytes(wrong), 80, "1.2.3.4", payload=b"hello"))
        await session.run()

        assert calls == []
        assert ws.sent == []
        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED

    run(scenario())


@pytest.mark.parametrize(
    "frame_factory",
    [
        lambda cred: b"\x00" * 23,
        lambda cred: build_header(cred, 53, "8.8.8.8", command=2),
        lambda cred: build_header(cred, 80, "1.2.3.4")[:21] + b"\x09" + b"\x00" * 8,
    ],
    ids=["too-short", "unsupported-command", "unsupported-address-kind"],
)
def test_bad_header_closes_silently(config, credential, frame_factory):
    async def scenario():
        calls = []
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(1, calls))

        ws.feed(frame_factory(credential))
        await session.run()

        assert calls == []
        assert ws.sent == []
        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED

    run(scenario())


def test_dial_failure_closes_without_response(config, credential):
    async def refusing(host, port):
        raise ConnectionRefusedError(111, "Connection refused")

    async def scenario():
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, refusing)
        ws.feed(build_header(credential, 81, "127.0.0.1"))
        await session.run()

        assert ws.sent == []
        assert ws.closed.is_set()
        assert session.destination is None
        assert session.state == SessionState.CLOSED

    run(scenario())


def test_dial_timeout_is_a_dial_failure(config, credential):
    async def hanging(host, port):
        await asyncio.sleep(30)

    async def scenario():
        ws = FakeWebSocket()
        fast = config.with_overrides(DIAL_TIMEOUT_SECONDS=0.05)
        session = TunnelSession(ws, fast, hanging)
        ws.feed(build_header(credential, 80, "192.0.2.1"))
        await session.run()

        assert ws.sent == []
        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED

    run(scenario())


def test_override_replaces_host_keeps_port(config, credential):
    async def scenario():
        dest = await LoopbackDestination().start()
        calls = []
        ws = FakeWebSocket()
        overridden = config.with_overrides(PROXY_IP="198.51.100.20")
        session = TunnelSession(ws, overridden, recording_connector(dest.port, calls))

        ws.feed(build_header(credential, 8443, "example.com"))
        task = asyncio.create_task(session.run())
        await until(lambda: ws.sent)

        assert calls == [("198.51.100.20", 8443)]
        ws.disconnect()
        await task
        await dest.close()

    run(scenario())


def test_later_frames_are_raw_payload_in_order(config, credential):
    """Frames after the first are forwarded verbatim, even header-shaped ones"""

    async def scenario():
        dest = await LoopbackDestination().start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 80, "10.0.0.1"))
        task = asyncio.create_task(session.run())
        await until(lambda: ws.sent)

        header_like = build_header(credential, 22, "10.9.9.9", payload=b"!")
        chunks = [header_like] + [f"chunk-{i:03d};".encode() for i in range(50)]
        for chunk in chunks:
            ws.feed(chunk)
        ws.feed_text("tail")
        expected = b"".join(chunks) + b"tail"

        await until(lambda: bytes(dest.connections[0].received) == expected)
        assert len(dest.connections) == 1

        ws.disconnect()
        await task
        await dest.close()

    run(scenario())


def test_destination_close_closes_transport(config, credential):
    async def scenario():
        dest = await LoopbackDestination().start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 80, "10.0.0.1"))
        task = asyncio.create_task(session.run())
        await until(lambda: dest.connections)

        dest.connections[0].writer.close()
        await asyncio.wait_for(task, timeout=2)

        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED
        await dest.close()

    run(scenario())


def test_transport_disconnect_closes_destination(config, credential):
    async def scenario():
        dest = await LoopbackDestination().start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 80, "10.0.0.1", payload=b"x"))
        task = asyncio.create_task(session.run())
        await until(lambda: dest.connections and dest.connections[0].received)

        ws.disconnect()
        await task
        await until(lambda: dest.connections[0].eof)

        assert session.destination.is_open is False
        await dest.close()

    run(scenario())


def test_concurrent_sessions_are_isolated(config, credential):
    async def scenario():
        dest_a = await LoopbackDestination().start()
        dest_b = await LoopbackDestination().start()
        ws_a, ws_b = FakeWebSocket(port=1), FakeWebSocket(port=2)
        session_a = TunnelSession(ws_a, config, recording_connector(dest_a.port, []))
        session_b = TunnelSession(ws_b, config, recording_connector(dest_b.port, []))

        ws_a.feed(build_header(credential, 80, "a.example", payload=b"AAAA"))
        ws_b.feed(build_header(credential, 80, "b.example", payload=b"BBBB"))
        tasks = [
            asyncio.create_task(session_a.run()),
            asyncio.create_task(session_b.run()),
        ]
        await until(lambda: ws_a.sent and ws_b.sent)
        ws_a.feed(b"aa")
        ws_b.feed(b"bb")

        await until(lambda: dest_a.connections and bytes(dest_a.connections[0].received) == b"AAAAaa")
        await until(lambda: dest_b.connections and bytes(dest_b.connections[0].received) == b"BBBBbb")

        dest_a.connections[0].writer.write(b"to-a")
        await dest_a.connections[0].writer.drain()
        await until(lambda: b"to-a" in b"".join(ws_a.sent))
        assert b"to-a" not in b"".join(ws_b.sent)

        ws_a.disconnect()
        ws_b.disconnect()
        await asyncio.gather(*tasks)
        await dest_a.close()
        await dest_b.close()

    run(scenario())


def test_close_is_idempotent(config, credential):
    async def scenario():
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(1, []))
        ws.disconnect()
        await session.run()

        await session.close()
        await session.close()
        assert session.state == SessionState.CLOSED

    run(scenario())


def test_header_is_only_accepted_once(config, credential):
    async def scenario():
        ws = FakeWebSocket()
        session = TunnelSession(ws, config)
        frame = build_header(credential, 80, "1.2.3.4")
        session.accept_header(frame)
        await session.close()
        with pytest.raises(RuntimeError):
            session.accept_header(frame)

    run(scenario())


def test_guarded_writes_are_dropped_after_close():
    """Both peers drop writes once closed instead of raising"""
    from streamgate.tunnel.peers import DestinationPeer, TransportPeer

    async def scenario():
        dest = await LoopbackDestination().start()
        reader, writer = await asyncio.open_connection("127.0.0.1", dest.port)
        peer = DestinationPeer(reader, writer)
        assert await peer.write(b"before")
        await peer.close()
        assert not await peer.write(b"after")
        await peer.close()

        ws = FakeWebSocket()
        transport = TransportPeer(ws)
        assert await transport.send(b"one")
        await transport.close()
        assert not await transport.send(b"two")
        assert ws.sent == [b"one"]

        await until(lambda: dest.connections and dest.connections[0].eof)
        assert bytes(dest.connections[0].received) == b"before"
        await dest.close()

    run(scenario())


@pytest.mark.parametrize(
    "domain",
    ["a" * 64 + ".example", "bad\ufffdname.example"],
    ids=["label-too-long", "replacement-char"],
)
def test_unencodable_domain_is_a_dial_failure(config, credential, domain):
    async def scenario():
        ws = FakeWebSocket()
        session = TunnelSession(ws, config)
        frame = build_header(credential, 80, domain)
        header = session.accept_header(frame)

        with pytest.raises(DialFailure):
            await session.connect(header, frame)

        await session.close()
        assert ws.sent == []

    run(scenario())


def test_destination_reset_tears_down_both_sides(config, credential):
    async def scenario():
        dest = await LoopbackDestination().start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 80, "10.0.0.1", payload=b"x"))
        task = asyncio.create_task(session.run())
        await until(lambda: dest.connections and dest.connections[0].received)

        sock = dest.connections[0].writer.get_extra_info("socket")
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        dest.connections[0].writer.transport.abort()

        await asyncio.wait_for(task, timeout=2)
        assert ws.closed.is_set()
        assert session.destination.is_open is False
        assert session.state == SessionState.CLOSED
        await dest.close()

    run(scenario())


class FailingSendWebSocket(FakeWebSocket):
    """Accepts the ack, then fails every later send"""

    async def send_bytes(self, data: bytes) -> None:
        if self.sent:
            raise RuntimeError("Unexpected ASGI message 'websocket.send'")
        await super().send_bytes(data)


def test_transport_send_failure_tears_down_both_sides(config, credential):
    async def scenario():
        dest = await LoopbackDestination(greeting=b"220 ready\r\n").start()
        ws = FailingSendWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 25, "mail.example.com"))
        await asyncio.wait_for(session.run(), timeout=2)

        assert ws.sent == [b"\x00\x00"]
        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED
        await until(lambda: dest.connections[0].eof)
        await dest.close()

    run(scenario())


def test_cancelled_relay_cancels_both_directions(config, credential):
    """Cancelling a relaying session stops both pumps without leaking them"""

    async def scenario():
        dest = await LoopbackDestination().start()
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, recording_connector(dest.port, []))

        ws.feed(build_header(credential, 80, "10.0.0.1"))
        task = asyncio.create_task(session.run())
        await until(lambda: session.state == SessionState.RELAYING)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        pumps = [t for t in asyncio.all_tasks() if t.get_name() in ("upstream", "downstream")]
        assert pumps == []
        assert session.state == SessionState.CLOSED
        await dest.close()

    run(scenario())


def test_unexpected_error_is_logged_with_traceback(config, credential):
    from loguru import logger

    async def broken(host, port):
        raise RuntimeError("resolver exploded")

    async def scenario():
        ws = FakeWebSocket()
        session = TunnelSession(ws, config, broken)
        ws.feed(build_header(credential, 80, "1.2.3.4"))
        await session.run()

        assert ws.sent == []
        assert ws.closed.is_set()
        assert session.state == SessionState.CLOSED

    records = []
    sink_id = logger.add(records.append, level="ERROR", format="{message}")
    try:
        run(scenario())
    finally:
        logger.remove(sink_id)

    assert any(r.record["exception"] is not None for r in records)
    assert any("resolver exploded" in r for r in records)
