"""
Port forwarding through a StreamGate gateway.

This command creates a local TCP server. Every accepted local connection
gets its own WebSocket to the gateway, announces the destination in the
first frame, waits for the 2-byte acknowledgement and then relays bytes
in both directions.

Example:
    # Reach example.com:80 through the gateway on local port 8080
    streamgate forward wss://gw.example.org/api/v1/stream example.com 80 -l 8080
"""

import asyncio
from typing import Annotated

import typer
import websockets

from streamgate.cli.output import console, print_error
from streamgate.tunnel.identity import parse_credential
from streamgate.tunnel.protocol import ACK_SIZE, build_header

app = typer.Typer(help="Forward a local port through a gateway")

ACK_TIMEOUT_SECONDS = 10.0
CHUNK_SIZE = 65536


class ForwardError(Exception):
    """Gateway refused or failed to open the tunnel."""


async def open_tunnel(
    gateway_url: str,
    credential: bytes,
    target_host: str,
    target_port: int,
    first_payload: bytes = b"",
):
    """
    Open one tunnel WebSocket and complete the header exchange.

    Args:
        gateway_url: ws:// or wss:// URL of the gateway tunnel path.
        credential: 16-byte identity credential.
        target_host: Destination host the gateway should dial.
        target_port: Destination port.
        first_payload: Application bytes sent along with the header.

    Returns:
        Connected websockets client connection.

    Raises:
        ForwardError: If the gateway closes or answers with a bad ack.
    """
    ws = await websockets.connect(gateway_url, max_size=None)
    try:
        frame = build_header(credential, target_port, target_host, payload=first_payload)
        await ws.send(frame)
        ack = await asyncio.wait_for(ws.recv(), timeout=ACK_TIMEOUT_SECONDS)
    except (websockets.exceptions.ConnectionClosed, asyncio.TimeoutError) as e:
        await ws.close()
        raise ForwardError(f"Gateway closed the tunnel: {e!r}") from e

    if not isinstance(ack, bytes) or len(ack) != ACK_SIZE or ack[1] != 0:
        await ws.close()
        raise ForwardError(f"Unexpected acknowledgement: {ack!r}")
    return ws


async def _local_to_gateway(reader: asyncio.StreamReader, ws) -> None:
    while True:
        data = await reader.read(CHUNK_SIZE)
        if not data:
            break
        await ws.send(data)


async def _gateway_to_local(ws, writer: asyncio.StreamWriter) -> None:
    async for message in ws:
        if isinstance(message, str):
            message = message.encode("utf-8")
        writer.write(message)
        await writer.drain()


async def handle_local_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    gateway_url: str,
    credential: bytes,
    target_host: str,
    target_port: int,
) -> None:
    """Tunnel one accepted local connection through its own WebSocket."""
    peer = writer.get_extra_info("peername")
    ws = None
    try:
        ws = await open_tunnel(gateway_url, credential, target_host, target_port)
        console.print(f"[dim]{peer} → {target_host}:{target_port} open[/dim]")

        tasks = [
            asyncio.create_task(_local_to_gateway(reader, ws)),
            asyncio.create_task(_gateway_to_local(ws, writer)),
        ]
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    except ForwardError as e:
        console.print(f"[red]{peer}: {e}[/red]")
    except (OSError, websockets.exceptions.WebSocketException) as e:
        console.print(f"[red]{peer}: connection error: {e}[/red]")
    finally:
        if ws is not None:
            await ws.close()
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        console.print(f"[dim]{peer} closed[/dim]")


async def run_forwarder(
    gateway_url: str,
    credential: bytes,
    target_host: str,
    target_port: int,
    local_host: str,
    local_port: int,
) -> None:
    """Serve the local listener until cancelled."""

    async def on_connect(reader, writer):
        await handle_local_connection(
            reader, writer, gateway_url, credential, target_host, target_port
        )

    server = await asyncio.start_server(on_connect, local_host, local_port)
    async with server:
        await server.serve_forever()


@app.callback(invoke_without_command=True)
def forward(
    gateway_url: Annotated[
        str, typer.Argument(help="Gateway tunnel URL (ws:// or wss://)")
    ],
    target_host: Annotated[str, typer.Argument(help="Destination host")],
    target_port: Annotated[int, typer.Argument(help="Destination port")],
    uuid: Annotated[
        str,
        typer.Option("--uuid", "-u", help="Identity UUID", envvar="UUID"),
    ] = "00000000-0000-0000-0000-000000000000",
    local_port: Annotated[
        int | None,
        typer.Option(
            "--local-port",
            "-l",
            help="Local port to listen on (default: same as target)",
        ),
    ] = None,
    local_host: Annotated[
        str,
        typer.Option("--local-host", "-H", help="Local address to bind to"),
    ] = "127.0.0.1",
):
    """
    Forward a local port to a destination through the gateway.
    """
    if not gateway_url.startswith(("ws://", "wss://")):
        print_error(f"Gateway URL must start with ws:// or wss://: {gateway_url}")
        raise typer.Exit(1)

    try:
        credential = parse_credential(uuid)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if local_port is None:
        local_port = target_port

    console.print(
        f"[bold green]Forwarding[/bold green] "
        f"[cyan]{local_host}:{local_port}[/cyan] "
        f"[dim]→[/dim] "
        f"[yellow]{target_host}:{target_port}[/yellow] "
        f"[dim](via {gateway_url})[/dim]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    try:
        asyncio.run(
            run_forwarder(
                gateway_url, credential, target_host, target_port, local_host, local_port
            )
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    except OSError as e:
        if "Address already in use" in str(e):
            print_error(f"Port {local_port} is already in use.")
        else:
            print_error(f"Error: {e}")
        raise typer.Exit(1)
