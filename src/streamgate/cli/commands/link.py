"""Print the subscription link for a public host."""

from typing import Annotated

import typer

from streamgate.cli.output import console, print_error
from streamgate.gateway.config import ConfigError, load_config
from streamgate.gateway.endpoints.subscription import (
    build_share_link,
    encode_subscription,
)

app = typer.Typer(help="Print the subscription link")


@app.callback(invoke_without_command=True)
def link(
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="Public host name (env: PUBLIC_HOST)"),
    ] = None,
    raw: Annotated[
        bool, typer.Option("--raw", help="Print only the base64 document")
    ] = False,
):
    """Show the share link and its base64 subscription form."""
    try:
        config = load_config()
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    public_host = host or config.PUBLIC_HOST
    if not public_host:
        print_error("No public host given. Use --host or set PUBLIC_HOST.")
        raise typer.Exit(1)

    share_link = build_share_link(config, public_host)
    encoded = encode_subscription(share_link)

    if raw:
        console.print(encoded, highlight=False, soft_wrap=True)
        return

    console.print("[bold]Share link:[/bold]")
    console.print(share_link, highlight=False, soft_wrap=True)
    console.print("\n[bold]Subscription (base64):[/bold]")
    console.print(encoded, highlight=False, soft_wrap=True)
