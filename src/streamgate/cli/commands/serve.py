"""Run the gateway server."""

from typing import Annotated

import typer

from streamgate.cli.output import print_error
from streamgate.gateway.config import ConfigError, load_config
from streamgate.models.enums import LogLevel

app = typer.Typer(help="Run the gateway server")


@app.callback(invoke_without_command=True)
def serve(
    port: Annotated[
        int | None, typer.Option("--port", "-p", help="Listen port (env: PORT)")
    ] = None,
    bind: Annotated[
        str | None, typer.Option("--bind", "-b", help="Bind address (env: BIND_IP)")
    ] = None,
    path: Annotated[
        str | None,
        typer.Option("--path", help="WebSocket tunnel path (env: WS_PATH)"),
    ] = None,
    uuid: Annotated[
        str | None, typer.Option("--uuid", "-u", help="Identity UUID (env: UUID)")
    ] = None,
    proxy_ip: Annotated[
        str | None,
        typer.Option("--proxy-ip", help="Destination host override (env: PROXYIP)"),
    ] = None,
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-l", help="Log level (env: LOG_LEVEL)"),
    ] = None,
):
    """
    Start the gateway.

    Command-line options take precedence over environment variables.
    """
    from streamgate.gateway.app import run

    try:
        config = load_config().with_overrides(
            PORT=port,
            BIND_IP=bind,
            WS_PATH=path,
            UUID=uuid,
            PROXY_IP=proxy_ip,
            LOG_LEVEL=log_level,
        )
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    run(config)
