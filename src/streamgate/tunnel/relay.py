"""Bidirectional relay between the WebSocket peer and the destination."""

import asyncio

from streamgate.tunnel.errors import PeerError
from streamgate.tunnel.peers import DestinationPeer, TransportPeer


async def pump_transport_to_destination(
    transport: TransportPeer, destination: DestinationPeer
) -> None:
    """Forward every WebSocket frame verbatim until the peer disconnects."""
    while True:
        data = await transport.receive()
        if data is None:
            break
        await destination.write(data)


async def pump_destination_to_transport(
    destination: DestinationPeer, transport: TransportPeer, chunk_size: int
) -> None:
    """Forward destination bytes as binary frames until EOF."""
    while True:
        data = await destination.read(chunk_size)
        if not data:
            break
        await transport.send(data)


async def relay(
    transport: TransportPeer,
    destination: DestinationPeer,
    chunk_size: int = 65536,
) -> str:
    """
    Copy bytes both ways until either side ends.

    The direction that is still running when the other ends is cancelled;
    closing both peers is left to the caller.

    Returns:
        "transport" or "destination", whichever side ended first.

    Raises:
        PeerError: If the first direction to finish ended with a failure.
    """
    upstream = asyncio.create_task(
        pump_transport_to_destination(transport, destination), name="upstream"
    )
    downstream = asyncio.create_task(
        pump_destination_to_transport(destination, transport, chunk_size),
        name="downstream",
    )

    try:
        done, _ = await asyncio.wait(
            [upstream, downstream], return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for t in (upstream, downstream):
            if not t.done():
                t.cancel()
        # wait, not gather: this also runs while the caller is being cancelled
        await asyncio.wait([upstream, downstream])

    first = upstream if upstream in done else downstream
    error = first.exception()
    if error is not None:
        if isinstance(error, PeerError):
            raise error
        raise PeerError(f"Relay failed: {error!r}") from error

    return "transport" if first is upstream else "destination"
