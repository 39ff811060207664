"""
StreamGate unified CLI entry point.

Usage:
    streamgate [OPTIONS] COMMAND [ARGS]...

Commands:
    serve     Run the gateway
    link      Print the subscription link
    config    Configuration
    forward   Forward a local port through a gateway
"""

import typer

from streamgate.cli.commands import config_cmd, forward, link, serve
from streamgate.cli.output import console

app = typer.Typer(
    name="streamgate",
    help="StreamGate WebSocket tunnel gateway",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(serve.app, name="serve", help="Run the gateway server")
app.add_typer(link.app, name="link", help="Print the subscription link")
app.add_typer(config_cmd.app, name="config", help="Configuration")
app.add_typer(forward.app, name="forward", help="Forward a local port through a gateway")


@app.command("version")
def version():
    """Show version information."""
    from streamgate import __version__

    console.print(f"StreamGate v{__version__}")


if __name__ == "__main__":
    app()
