"""Config management commands."""

import typer

from streamgate.cli.output import console, print_error
from streamgate.gateway.config import ConfigError, env_source, load_config
from streamgate.tunnel.identity import mask_credential

app = typer.Typer(help="Configuration commands")


@app.command("show")
def show_config():
    """Show the effective configuration."""
    from rich.table import Table

    try:
        config = load_config()
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    table = Table(title="Current Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source")

    rows = [
        ("BIND_IP", config.BIND_IP),
        ("PORT", str(config.PORT)),
        ("UUID", mask_credential(config.get_credential())),
        ("PROXY_IP", config.PROXY_IP or "(off)"),
        ("WS_PATH", config.WS_PATH),
        ("DIAL_TIMEOUT_SECONDS", str(config.DIAL_TIMEOUT_SECONDS)),
        ("RELAY_CHUNK_SIZE", str(config.RELAY_CHUNK_SIZE)),
        ("PUBLIC_HOST", config.PUBLIC_HOST or "(request host)"),
        ("SUB_PATH", config.SUB_PATH or "(off)"),
        ("KEEPALIVE_URL", config.KEEPALIVE_URL or "(off)"),
        ("LOG_LEVEL", config.LOG_LEVEL.value),
        ("LOG_FILE", config.LOG_FILE or "(stderr only)"),
    ]
    for name, value in rows:
        table.add_row(name, value, env_source(name))

    console.print(table)
